import functools
from typing import Callable, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from gausshermite import types

# psi_0(x) = pi^(-1/4) exp(-x^2/2)
HERMITE_NORMALIZATION = np.pi**-0.25


class RecurrenceCoefficients(NamedTuple):
    """Coefficients of the normalized Hermite function recurrence.

    Formula:
        psi[n+1](x) = alpha[n] * x * psi[n](x) - beta[n] * psi[n-1](x)

    with alpha[n] = sqrt(2/(n+1)) and beta[n] = sqrt(n/(n+1)). Since
    beta[0] = 0, the same step produces psi[1] from psi[0].
    """

    alpha: np.ndarray  # shape (order,)
    beta: np.ndarray  # shape (order,)


@functools.lru_cache(maxsize=None)
def recurrence_coefficients(order: int) -> RecurrenceCoefficients:
    """Computes the recurrence coefficients needed to reach psi[order]."""
    n = np.arange(order, dtype=np.float64)
    alpha = np.sqrt(2.0 / (n + 1))
    beta = np.sqrt(n / (n + 1))
    alpha.setflags(write=False)
    beta.setflags(write=False)
    return RecurrenceCoefficients(alpha=alpha, beta=beta)


def fill_hermite_1d(
    workspace: np.ndarray, x: types.Array | float, envelope: bool = True
) -> np.ndarray:
    """Fills a workspace with the normalized Hermite functions at x.

    Args:
        workspace: The output buffer of shape (order+1, *np.shape(x)).
        x: The evaluation point(s).
        envelope: If False, the Gaussian factor exp(-x^2/2) is omitted and
            the workspace holds only the polynomial part of each function.

    Returns:
        The workspace, with workspace[n] = psi[n](x).
    """
    order = workspace.shape[0] - 1
    alpha, beta = recurrence_coefficients(order)

    workspace[0] = HERMITE_NORMALIZATION
    if envelope:
        workspace[0] *= np.exp(-0.5 * np.square(x))

    previous = np.zeros_like(workspace[0])
    for n in range(order):
        workspace[n + 1] = alpha[n] * x * workspace[n] - beta[n] * previous
        previous = workspace[n]

    return workspace


def _gaussian_moments(max_moment: int) -> np.ndarray:
    """Computes the moments of psi[0].

    Formula:
        G[m] = integral x^m psi[0](x) dx
             = pi^(-1/4) sqrt(2 pi) (m-1)!!    m even
             = 0                               m odd

    Returns:
        An array G of shape (max_moment+1,).
    """
    G = np.zeros(max_moment + 1, dtype=np.float64)
    G[0] = HERMITE_NORMALIZATION * np.sqrt(2 * np.pi)
    for m in range(2, max_moment + 1, 2):
        G[m] = (m - 1) * G[m - 2]

    return G


def fill_moments_1d(workspace: np.ndarray, moment: int) -> np.ndarray:
    """Fills a workspace with the moments of the normalized Hermite functions.

    Formula:
        I[m, n] = integral x^m psi[n](x) dx
        I[m, n+1] = alpha[n] I[m+1, n] - beta[n] I[m, n-1]

    The recurrence in n consumes one power of x per step, so the table is
    seeded with the moments of psi[0] up to moment + order.

    Args:
        workspace: The output buffer of shape (order+1,).
        moment: The power m of x.

    Returns:
        The workspace, with workspace[n] = I[moment, n].
    """
    if moment < 0:
        raise ValueError(f"Moments must be non-negative. Got {moment}")

    order = workspace.shape[0] - 1
    alpha, beta = recurrence_coefficients(order)

    # I[:, n] is valid for m <= moment + order - n.
    current = _gaussian_moments(moment + order)
    previous = np.zeros_like(current)
    workspace[0] = current[moment]

    for n in range(order):
        following = np.zeros_like(current)
        following[:-1] = alpha[n] * current[1:] - beta[n] * previous[:-1]
        previous, current = current, following
        workspace[n + 1] = current[moment]

    return workspace


class _HermiteStepParams(NamedTuple):
    x: jax.Array  # shape (N,)


def _hermite_step(
    params: _HermiteStepParams,
    carry: tuple[jax.Array, jax.Array],
    coefficients: tuple[jax.Array, jax.Array],
) -> tuple[tuple[jax.Array, jax.Array], jax.Array]:
    """Computes the next function in the Hermite recurrence.

    Args:
      params: The evaluation points.
      carry: The arrays (psi[n], psi[n-1]).
      coefficients: The scalars (alpha[n], beta[n]).

    Returns:
      A tuple (new_carry, output):
        new_carry: (psi[n+1], psi[n]) for the next step.
        output: psi[n+1] to be stacked into the result array.
    """
    p_n, p_nm1 = carry
    alpha_n, beta_n = coefficients

    p_np1 = alpha_n * params.x * p_n - beta_n * p_nm1
    return (p_np1, p_n), p_np1


def hermite_functions_jax(
    order: int,
    x: jax.Array,
    envelope: bool = True,
    exp_fn: Callable[[jax.Array], jax.Array] = jnp.exp,
) -> jax.Array:
    """Computes the normalized Hermite functions with a scan over the orders.

    The Gaussian factor is applied to psi[0] before the recurrence starts,
    so far from the origin every function underflows to zero instead of
    overflowing in its polynomial part.

    Args:
      order: The maximum order. Must be static under jit.
      x: The evaluation points. Shape (N,).
      envelope: If False, the Gaussian factor exp(-x^2/2) is omitted and
        the result holds only the polynomial part of each function.
      exp_fn: The exponential used for the Gaussian factor.

    Returns:
      An array of shape (order+1, N) whose n-th row is psi[n](x).
    """
    x = jnp.asarray(x)
    alpha, beta = recurrence_coefficients(order)
    coefficients = (
        jnp.asarray(alpha, dtype=x.dtype),
        jnp.asarray(beta, dtype=x.dtype),
    )

    p_0 = jnp.full_like(x, HERMITE_NORMALIZATION)
    if envelope:
        p_0 = p_0 * exp_fn(-0.5 * jnp.square(x))

    step_fn = functools.partial(_hermite_step, _HermiteStepParams(x=x))

    init_carry = (p_0, jnp.zeros_like(x))
    _, p_rest = jax.lax.scan(step_fn, init_carry, coefficients)
    return jnp.concatenate([p_0[None, :], p_rest])
