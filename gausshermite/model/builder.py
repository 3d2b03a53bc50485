import dataclasses
import functools
from typing import NamedTuple, Optional

import jax
from jax import jit
import jax.numpy as jnp
import numpy as np

from gausshermite import types
from gausshermite.basis import hermite
from gausshermite.basis import packed
from gausshermite.ellipses import core as ellipses
from gausshermite.integrals.fast_exp import fast_exp


@dataclasses.dataclass(frozen=True)
class BuilderOptions:
    # Compute the Gaussian envelope with fast_exp instead of jnp.exp.
    use_approximate_exp: bool = False

    # Floating point type of the workspaces and the model. If None, the
    # type of the coordinate arrays is used.
    dtype: Optional[np.dtype] = None

    def __post_init__(self):
        if self.dtype is not None and not jnp.issubdtype(
            self.dtype, jnp.floating
        ):
            raise ValueError(
                f"dtype must be a floating point type. Got {self.dtype}"
            )


class Workspace(NamedTuple):
    """The intermediate arrays of a model evaluation.

    The model matrix is
        M[p, i] = det(T) * psi[x_i](xt[p]) * psi[y_i](yt[p])
    where (x_i, y_i) are the orders of the i-th packed basis function.
    """

    # Hermite functions at the transformed x and y coordinates, with the
    # Gaussian factor of each axis included. shape (order+1, n_pixels)
    x_functions: jax.Array
    y_functions: jax.Array

    # Determinant of the grid transform. shape ()
    det: jax.Array


def _split_parameters(
    parameters: jax.Array,
) -> tuple[jax.Array, jax.Array]:
    """Splits (a, b, theta[, x, y]) into the core and the center."""
    if parameters.shape == (5,):
        return parameters[:3], parameters[3:5]
    if parameters.shape == (3,):
        return parameters, jnp.zeros(2, dtype=parameters.dtype)
    raise ValueError(
        f"Expected 3 core or 5 ellipse parameters. Got shape {parameters.shape}"
    )


def _transform_coordinates(
    x: jax.Array, y: jax.Array, parameters: jax.Array
) -> tuple[jax.Array, jax.Array, jax.Array]:
    """Maps pixel coordinates onto the unit circle frame of the ellipse.

    Returns:
        The transformed coordinates xt, yt of shape (n_pixels,) and the
        determinant of the grid transform.
    """
    core, center = _split_parameters(parameters)
    T = ellipses.grid_transform_from_parameters(core)

    dx = x - center[0]
    dy = y - center[1]
    xt = T[0, 0] * dx + T[0, 1] * dy
    yt = T[1, 0] * dx + T[1, 1] * dy
    det = T[0, 0] * T[1, 1] - T[0, 1] * T[1, 0]
    return xt, yt, det


def compute_workspace(
    order: int,
    x: jax.Array,
    y: jax.Array,
    parameters: jax.Array,
    use_approximate_exp: bool = False,
) -> Workspace:
    """Evaluates the per-axis recurrences at the transformed coordinates.

    Args:
        order: The order of the basis.
        x, y: The centered pixel coordinates. Shape (n_pixels,)
        parameters: The ellipse parameters (a, b, theta) or
            (a, b, theta, x, y).
        use_approximate_exp: Use fast_exp for the Gaussian envelope.
    """
    xt, yt, det = _transform_coordinates(x, y, parameters)
    exp_fn = fast_exp if use_approximate_exp else jnp.exp

    return Workspace(
        x_functions=hermite.hermite_functions_jax(order, xt, exp_fn=exp_fn),
        y_functions=hermite.hermite_functions_jax(order, yt, exp_fn=exp_fn),
        det=det,
    )


def _model_from_workspace(order: int, workspace: Workspace) -> jax.Array:
    ix, iy = packed.generate_packed_pairs(order).T
    # shape (n_basis, n_pixels)
    columns = workspace.x_functions[ix] * workspace.y_functions[iy]
    return columns.T * workspace.det


@functools.partial(jit, static_argnames=("order", "use_approximate_exp"))
def build_model(
    order: int,
    x: jax.Array,
    y: jax.Array,
    parameters: jax.Array,
    use_approximate_exp: bool = False,
) -> jax.Array:
    """Evaluates the basis functions of an elliptical Hermite basis.

    Formula:
        (xt, yt) = T (x - x0, y - y0)
        M[p, i] = det(T) psi[x_i](xt[p]) psi[y_i](yt[p])

    where T is the grid transform of the ellipse, (x0, y0) its center
    and (x_i, y_i) the orders of the i-th packed basis function.

    Args:
        order: The order of the basis.
        x, y: The centered pixel coordinates. Shape (n_pixels,)
        parameters: The ellipse parameters (a, b, theta) or
            (a, b, theta, x0, y0).
        use_approximate_exp: Use fast_exp for the Gaussian envelope.

    Returns:
        The model matrix M of shape (n_pixels, compute_size(order)).
    """
    workspace = compute_workspace(order, x, y, parameters, use_approximate_exp)
    return _model_from_workspace(order, workspace)


@functools.partial(jit, static_argnames=("order", "use_approximate_exp"))
def build_model_derivative(
    order: int,
    x: jax.Array,
    y: jax.Array,
    parameters: jax.Array,
    use_approximate_exp: bool = False,
) -> jax.Array:
    """Differentiates build_model with respect to the ellipse parameters.

    Returns:
        An array D of shape (n_pixels, compute_size(order), n_params) with
        D[p, i, k] = dM[p, i] / dparameters[k].
    """
    model_fn = functools.partial(
        build_model,
        order,
        x,
        y,
        use_approximate_exp=use_approximate_exp,
    )
    return jax.jacfwd(model_fn)(parameters)


def _weave_model_vector(
    order: int, coefficients: jax.Array, workspace: Workspace
) -> jax.Array:
    """Computes the model matrix times a coefficient vector.

    The coefficients are scattered into a triangular matrix
    C[x_i, y_i] = coefficients[i] which is contracted against the per-axis
    workspaces, so the (n_pixels, n_basis) matrix is never formed.

    Returns:
        An array of shape (n_pixels,).
    """
    ix, iy = packed.generate_packed_pairs(order).T
    C = jnp.zeros((order + 1, order + 1), dtype=coefficients.dtype)
    C = C.at[ix, iy].set(coefficients)

    x_functions = workspace.x_functions[: order + 1]
    y_functions = workspace.y_functions[: order + 1]
    return workspace.det * jnp.einsum(
        "xp,xy,yp->p", x_functions, C, y_functions
    )


_weave_model_vector_jit = jit(_weave_model_vector, static_argnames="order")
_model_from_workspace_jit = jit(_model_from_workspace, static_argnames="order")
_compute_workspace_jit = jit(
    compute_workspace, static_argnames=("order", "use_approximate_exp")
)


def _ellipse_parameters(
    ellipse: ellipses.Axes | ellipses.Ellipse,
) -> jax.Array:
    if isinstance(ellipse, (ellipses.Axes, ellipses.Ellipse)):
        return ellipse.parameters
    raise TypeError(
        f"Expected input of type Axes or Ellipse, got {type(ellipse)}"
    )


class ModelBuilder:
    """Evaluates an elliptical Hermite basis over a flattened set of pixels.

    Instead of looping over pixels, each step of the Hermite recurrence
    operates on arrays of all pixel coordinates. The model matrix has the
    flattened pixels in rows and the packed basis functions in columns, and
    is recomputed by every call to update.
    """

    def __init__(
        self,
        order: int,
        x: types.Array,
        y: types.Array,
        options: BuilderOptions = BuilderOptions(),
    ):
        self._order = types.validate_order(order)
        self._options = options

        if np.ndim(x) != 1:
            raise ValueError(
                f"x must be one dimensional. Got shape {np.shape(x)}"
            )
        types.check_shape("y", y, np.shape(x))

        dtype = options.dtype
        if dtype is None:
            dtype = jnp.result_type(x, y, 1.0)
        self._x = jnp.asarray(x, dtype=dtype)
        self._y = jnp.asarray(y, dtype=dtype)

        self._parameters: Optional[jax.Array] = None
        self._workspace: Optional[Workspace] = None
        self._model: Optional[jax.Array] = None

    @property
    def order(self) -> int:
        return self._order

    @property
    def size(self) -> int:
        """The number of packed basis functions."""
        return packed.compute_size(self._order)

    @property
    def n_pixels(self) -> int:
        return self._x.shape[0]

    @property
    def dtype(self) -> np.dtype:
        return self._x.dtype

    @property
    def model(self) -> jax.Array:
        """The model matrix of shape (n_pixels, size) for the current ellipse."""
        self._check_updated()
        return self._model

    def update(self, ellipse: ellipses.Axes | ellipses.Ellipse) -> None:
        """Sets the basis ellipse and recomputes the model matrix.

        An Axes core leaves the pixel coordinates as they are. An Ellipse
        additionally re-centers them on the ellipse center.
        """
        parameters = jnp.asarray(_ellipse_parameters(ellipse), dtype=self.dtype)

        self._parameters = parameters
        self._workspace = _compute_workspace_jit(
            self._order,
            self._x,
            self._y,
            parameters,
            use_approximate_exp=self._options.use_approximate_exp,
        )
        self._model = _model_from_workspace_jit(self._order, self._workspace)

    def compute_derivative(self) -> jax.Array:
        """Differentiates the model matrix with respect to the ellipse.

        The parameters are (a, b, theta) if the last update used an Axes core
        and (a, b, theta, x, y) if it used an Ellipse.

        Returns:
            An array of shape (n_pixels, size, n_params).
        """
        self._check_updated()
        return build_model_derivative(
            self._order,
            self._x,
            self._y,
            self._parameters,
            use_approximate_exp=self._options.use_approximate_exp,
        )

    def add_model_matrix(self, order: int, output: np.ndarray) -> np.ndarray:
        """Adds the first compute_size(order) model columns to output.

        Args:
            order: The order of the sub-basis. Must not exceed self.order.
            output: A numpy array of shape (n_pixels, compute_size(order)).
                It is updated in place.
        """
        size = self._check_order(order)
        types.check_shape("output", output, (self.n_pixels, size))
        self._check_updated()

        output += np.asarray(self._model[:, :size], dtype=output.dtype)
        return output

    def add_model_vector(
        self, order: int, coefficients: types.Array, output: np.ndarray
    ) -> np.ndarray:
        """Adds the model evaluated with the given coefficients to output.

        Args:
            order: The order of the sub-basis. Must not exceed self.order.
            coefficients: Packed coefficients of shape (compute_size(order),).
            output: A numpy array of shape (n_pixels,). It is updated in place.
        """
        size = self._check_order(order)
        types.check_shape("coefficients", coefficients, (size,))
        types.check_shape("output", output, (self.n_pixels,))
        self._check_updated()

        values = _weave_model_vector_jit(
            order, jnp.asarray(coefficients, dtype=self.dtype), self._workspace
        )
        output += np.asarray(values, dtype=output.dtype)
        return output

    def _check_order(self, order: int) -> int:
        order = types.validate_order(order)
        if order > self._order:
            raise ValueError(
                f"Order {order} exceeds the builder order {self._order}"
            )
        return packed.compute_size(order)

    def _check_updated(self) -> None:
        if self._model is None:
            raise RuntimeError("update must be called before using the model.")
