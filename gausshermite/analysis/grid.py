import dataclasses

import numpy as np

from gausshermite import types


@dataclasses.dataclass
class PixelGrid:
    """A regularly spaced rectangular grid of pixel centers."""

    origin: np.ndarray  # Shape (2,). The (x, y) position of the first pixel.
    dims: tuple[int, int]  # (nx, ny)
    spacing: float = 1.0


def generate_coordinates(
    grid: PixelGrid, center: types.Array = (0.0, 0.0)
) -> tuple[np.ndarray, np.ndarray]:
    """Generate the flattened, centered pixel coordinates of the grid.

    Pixels are flattened in row-major image order, i.e. x varies fastest.

    Args:
        grid: The PixelGrid defining the grid parameters.
        center: The point subtracted from every pixel position.

    Returns:
        Arrays x, y of shape (nx * ny,) satisfying:
        (x[j * nx + i], y[j * nx + i]) = (x_i, y_j) - center
    """
    nx, ny = grid.dims
    origin = np.asarray(grid.origin, dtype=np.float64)
    center = np.asarray(center, dtype=np.float64)

    x = np.arange(nx) * grid.spacing + origin[0] - center[0]
    y = np.arange(ny) * grid.spacing + origin[1] - center[1]

    X, Y = np.meshgrid(x, y, indexing="xy")

    return X.ravel(), Y.ravel()


def build_centered_grid(radius: float, spacing: float = 1.0) -> PixelGrid:
    """Build a square grid centered on the origin.

    Args:
        radius: The grid extends at least this far from the origin along
            each axis.
        spacing: The distance between neighboring pixels.

    Returns:
        A PixelGrid with an odd number of pixels along each axis, one of
        which is at the origin.
    """
    half_width = int(np.ceil(radius / spacing))
    n = 2 * half_width + 1
    origin = np.array([-half_width * spacing, -half_width * spacing])

    return PixelGrid(origin=origin, dims=(n, n), spacing=spacing)
