from typing import TypeAlias

import jax
import numpy as np

# Dynamic data
Array: TypeAlias = np.ndarray | jax.Array

Scalar: TypeAlias = float | np.floating | jax.Array


def validate_order(order: int) -> int:
    """Checks that order is a non-negative integer and returns it as an int."""
    if isinstance(order, bool) or not isinstance(order, (int, np.integer)):
        raise TypeError(
            f"Order must be an integer. Got {order!r} of type {type(order)}"
        )
    if order < 0:
        raise ValueError(f"Order must be non-negative. Got {order}")

    return int(order)


def check_shape(name: str, array: Array, expected: tuple[int, ...]) -> None:
    """Raises a ValueError if the array does not have the expected shape."""
    if tuple(np.shape(array)) != tuple(expected):
        raise ValueError(
            f"{name} has shape {tuple(np.shape(array))}, expected {tuple(expected)}"
        )
