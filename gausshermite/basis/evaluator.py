import numpy as np

from gausshermite import types
from gausshermite.basis import hermite
from gausshermite.basis import packed


def _unpack_point(x, y) -> tuple[float, float]:
    if y is not None:
        return float(x), float(y)
    if hasattr(x, "x") and hasattr(x, "y"):
        return float(x.x), float(x.y)

    point = np.asarray(x, dtype=np.float64)
    if point.shape != (2,):
        raise ValueError(
            f"Expected a point with 2 coordinates. Got shape {point.shape}"
        )
    return float(point[0]), float(point[1])


def _inner_product_1d(
    row_order: int, col_order: int, a: float, b: float
) -> np.ndarray:
    """Computes the 1D inner products of two scaled Hermite bases.

    Formula:
        M[p, q] = integral psi[p](a x) psi[q](b x) dx

    The integrand is P[p](a x) P[q](b x) exp(-s^2 x^2) with
    s^2 = (a^2 + b^2) / 2, so the substitution u = s x reduces it to a
    polynomial of degree p + q against the weight exp(-u^2), which
    Gauss-Hermite quadrature with (p + q)//2 + 1 nodes integrates exactly.

    Returns:
        An array M of shape (row_order + 1, col_order + 1).
    """
    n_nodes = (row_order + col_order) // 2 + 1
    nodes, weights = np.polynomial.hermite.hermgauss(n_nodes)
    s = np.sqrt(0.5 * (a * a + b * b))

    # shape (row_order+1, n_nodes) and (col_order+1, n_nodes)
    P_row = hermite.fill_hermite_1d(
        np.zeros((row_order + 1, n_nodes)), a * nodes / s, envelope=False
    )
    P_col = hermite.fill_hermite_1d(
        np.zeros((col_order + 1, n_nodes)), b * nodes / s, envelope=False
    )

    return (P_row * weights) @ P_col.T / s


def compute_inner_product_matrix(
    row_order: int, col_order: int, a: float, b: float
) -> np.ndarray:
    """Computes the inner products of two 2D Hermite bases with different scales.

    Formula:
        M[i, j] = integral psi_i(a r) phi_j(b r) d^2 r

    where psi_i and phi_j are the packed basis functions of the row and
    column bases. The integral separates into a product of 1D inner
    products along each axis.

    Args:
        row_order: The order of the row basis.
        col_order: The order of the column basis.
        a: The scale of the row basis.
        b: The scale of the column basis.

    Returns:
        An array of shape
        (compute_size(row_order), compute_size(col_order)).
    """
    row_order = types.validate_order(row_order)
    col_order = types.validate_order(col_order)
    if not (a > 0 and b > 0):
        raise ValueError(f"Scales must be positive. Got a={a}, b={b}")

    m = _inner_product_1d(row_order, col_order, a, b)

    rx, ry = packed.generate_packed_pairs(row_order).T
    cx, cy = packed.generate_packed_pairs(col_order).T
    return m[rx[:, None], cx[None, :]] * m[ry[:, None], cy[None, :]]


class HermiteEvaluator:
    """Evaluates and integrates unscaled 2D Hermite function expansions.

    The basis function at packed position (x, y) is psi[x](u) psi[y](v)
    where psi[n] is the n-th orthonormal Hermite function. Each fill or sum
    call recomputes the per-axis workspaces, so their contents are only
    meaningful until the next call.
    """

    def __init__(self, order: int):
        order = types.validate_order(order)
        self._x_workspace = np.zeros(order + 1, dtype=np.float64)
        self._y_workspace = np.zeros(order + 1, dtype=np.float64)

    compute_inner_product_matrix = staticmethod(compute_inner_product_matrix)

    @property
    def order(self) -> int:
        return self._x_workspace.shape[0] - 1

    @property
    def size(self) -> int:
        """The number of packed basis functions."""
        return packed.compute_size(self.order)

    def fill_evaluation(self, target: np.ndarray, x, y=None) -> np.ndarray:
        """Fills a vector whose dot product with a coefficient vector evaluates
        the expansion at the point (x, y).

        If y is None, x is a point given as a length 2 sequence or an object
        with x and y attributes.
        """
        types.check_shape("target", target, (self.size,))
        x, y = _unpack_point(x, y)
        hermite.fill_hermite_1d(self._x_workspace, x)
        hermite.fill_hermite_1d(self._y_workspace, y)
        return self._weave_fill(target)

    def fill_integration(
        self, target: np.ndarray, x_moment: int = 0, y_moment: int = 0
    ) -> np.ndarray:
        """Fills a vector whose dot product with a coefficient vector computes
        the moment integral x^x_moment y^y_moment of the expansion.
        """
        types.check_shape("target", target, (self.size,))
        hermite.fill_moments_1d(self._x_workspace, x_moment)
        hermite.fill_moments_1d(self._y_workspace, y_moment)
        return self._weave_fill(target)

    def sum_evaluation(self, coefficients: np.ndarray, x, y=None) -> float:
        """Evaluates the expansion with the given coefficients at (x, y)."""
        types.check_shape("coefficients", coefficients, (self.size,))
        x, y = _unpack_point(x, y)
        hermite.fill_hermite_1d(self._x_workspace, x)
        hermite.fill_hermite_1d(self._y_workspace, y)
        return self._weave_sum(coefficients)

    def sum_integration(
        self, coefficients: np.ndarray, x_moment: int = 0, y_moment: int = 0
    ) -> float:
        """Integrates x^x_moment y^y_moment times the expansion."""
        types.check_shape("coefficients", coefficients, (self.size,))
        hermite.fill_moments_1d(self._x_workspace, x_moment)
        hermite.fill_moments_1d(self._y_workspace, y_moment)
        return self._weave_sum(coefficients)

    def _weave_fill(self, target: np.ndarray) -> np.ndarray:
        for i in packed.iterate_packed(self.order):
            target[i.index] = self._x_workspace[i.x] * self._y_workspace[i.y]
        return target

    def _weave_sum(self, coefficients: np.ndarray) -> float:
        # rows[y] = sum_x coefficients[(x, y)] * psi[x](u)
        rows = np.zeros_like(self._y_workspace)
        for i in packed.iterate_packed(self.order):
            rows[i.y] += coefficients[i.index] * self._x_workspace[i.x]
        return float(np.dot(rows, self._y_workspace))
