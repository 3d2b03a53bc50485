import dataclasses

import jax
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from gausshermite import types


def grid_transform_from_parameters(parameters: jax.Array) -> jax.Array:
    """Computes the linear map taking an ellipse onto the unit circle.

    Formula:
        T = diag(1/a, 1/b) R(-theta)

    Args:
        parameters: The core parameters (a, b, theta). Shape (3,)

    Returns:
        The 2x2 transform T. det(T) = 1/(a*b).
    """
    a, b, theta = parameters[0], parameters[1], parameters[2]
    c = jnp.cos(theta)
    s = jnp.sin(theta)
    return jnp.array([[c / a, s / a], [-s / b, c / b]])


@register_pytree_node_class
@dataclasses.dataclass(frozen=True)
class Axes:
    """An ellipse core parameterized by its semi-axes and position angle.

    a and b are the semi-major and semi-minor axes, theta is the angle of
    the major axis measured counter-clockwise from the x axis.
    """

    a: types.Scalar
    b: types.Scalar
    theta: types.Scalar = 0.0

    @property
    def parameters(self) -> jax.Array:
        """The parameter vector (a, b, theta)."""
        return jnp.stack(
            [jnp.asarray(self.a), jnp.asarray(self.b), jnp.asarray(self.theta)]
        )

    @classmethod
    def from_parameters(cls, parameters: types.Array) -> "Axes":
        return cls(a=parameters[0], b=parameters[1], theta=parameters[2])

    @property
    def determinant(self) -> jax.Array:
        """The determinant of the grid transform."""
        return 1.0 / (jnp.asarray(self.a) * jnp.asarray(self.b))

    def grid_transform(self) -> jax.Array:
        return grid_transform_from_parameters(self.parameters)

    def tree_flatten(self):
        children = (self.a, self.b, self.theta)
        aux_data = None
        return (children, aux_data)

    @classmethod
    def tree_unflatten(cls, aux_data, children) -> "Axes":
        return cls(*children)


@register_pytree_node_class
@dataclasses.dataclass(frozen=True)
class Ellipse:
    """An ellipse core together with its center."""

    core: Axes
    center: types.Array = (0.0, 0.0)  # shape (2,)

    @property
    def parameters(self) -> jax.Array:
        """The parameter vector (a, b, theta, x, y)."""
        return jnp.concatenate(
            [self.core.parameters, jnp.asarray(self.center).reshape(2)]
        )

    @classmethod
    def from_parameters(cls, parameters: types.Array) -> "Ellipse":
        return cls(
            core=Axes.from_parameters(parameters[:3]), center=parameters[3:5]
        )

    def grid_transform(self) -> jax.Array:
        return self.core.grid_transform()

    def tree_flatten(self):
        children = (self.core, self.center)
        aux_data = None
        return (children, aux_data)

    @classmethod
    def tree_unflatten(cls, aux_data, children) -> "Ellipse":
        return cls(*children)
