import math

import jax
import jax.numpy as jnp

# Upper bound on |fast_exp(z) / exp(z) - 1| for z in the normal range of
# float64. The truncation error of the polynomial below is
# |r|^7/7! * e^|r| ~ 2.4e-7 for |r| <= ln(2)/2.
FAST_EXP_RELATIVE_TOLERANCE = 1e-6


def _taylor_coefficients(degree: int) -> tuple[float, ...]:
    """The coefficients 1/j! of e^r for j = 0, ..., degree."""
    coefficients = [1.0]
    for k in range(1, degree + 1):
        coefficients.append(coefficients[-1] / k)
    return tuple(coefficients)


_EXP_COEFFICIENTS = _taylor_coefficients(6)
_LN2 = math.log(2.0)


@jax.custom_jvp
def fast_exp(z: jax.Array) -> jax.Array:
    """Approximates exp(z) with a short polynomial after range reduction.

    Formula:
        z = k ln(2) + r, with k = round(z / ln(2)) and |r| <= ln(2)/2
        exp(z) ~ 2^k * sum_{j=0}^{6} r^j / j!

    Args:
        z: The exponents. Any shape, floating point.

    Returns:
        An array with the same shape and dtype as z.
    """
    z = jnp.asarray(z)
    # Clamp to where exp under- or overflows so that k fits in an int32.
    finfo = jnp.finfo(z.dtype)
    z = jnp.clip(
        z,
        (finfo.minexp - finfo.nmant - 2) * _LN2,
        (finfo.maxexp + 1) * _LN2,
    )
    k = jnp.round(z / _LN2)
    r = z - k * _LN2

    # Horner's rule.
    p = jnp.full_like(r, _EXP_COEFFICIENTS[-1])
    for c in reversed(_EXP_COEFFICIENTS[:-1]):
        p = p * r + c

    return jnp.ldexp(p, k.astype(jnp.int32))


@fast_exp.defjvp
def _fast_exp_jvp(primals, tangents):
    (z,) = primals
    (z_dot,) = tangents
    result = fast_exp(z)
    return result, result * z_dot
