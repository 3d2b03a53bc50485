import dataclasses
import functools
from typing import Iterator

import numpy as np


def compute_offset(order: int) -> int:
    """The packed index of the first basis function with the given order."""
    return order * (order + 1) // 2


def compute_index(x: int, y: int) -> int:
    """The packed index of the basis function with orders (x, y)."""
    return compute_offset(x + y) + x


def compute_size(order: int) -> int:
    """The number of basis functions with x + y <= order."""
    return compute_offset(order + 1)


def compute_order(size: int) -> int:
    """Inverts compute_size.

    Raises:
        ValueError: If size is not (order+1)(order+2)/2 for any order >= 0.
    """
    order = (int(np.sqrt(8 * size + 1)) - 3) // 2
    if order < 0 or compute_size(order) != size:
        raise ValueError(f"{size} is not a valid packed basis size.")

    return order


@dataclasses.dataclass(frozen=True)
class PackedIndex:
    """A position (x, y) in the packed ordering of a 2D Hermite basis.

    The pair (x, y) is mapped to the packed position
    index = (x+y)(x+y+1)/2 + x. Pairs are ordered by increasing order
    n = x + y and, within an order, by decreasing y.

    Iteration does not terminate on its own, so loops must be bounded by
    the caller:

        i = PackedIndex()
        while i.order <= order:
            ...
            i = i.advance()
    """

    x: int = 0
    y: int = 0

    def __post_init__(self):
        if self.x < 0 or self.y < 0:
            raise ValueError(
                f"Packed orders must be non-negative. Got ({self.x}, {self.y})"
            )

    @property
    def order(self) -> int:
        return self.x + self.y

    @property
    def index(self) -> int:
        return compute_index(self.x, self.y)

    def advance(self) -> "PackedIndex":
        """Returns the next position in the packed ordering."""
        if self.y == 0:
            return PackedIndex(x=0, y=self.order + 1)
        return PackedIndex(x=self.x + 1, y=self.y - 1)


def iterate_packed(order: int) -> Iterator[PackedIndex]:
    """Yields the packed positions of a basis with the given max order."""
    i = PackedIndex()
    while i.order <= order:
        yield i
        i = i.advance()


@functools.lru_cache(maxsize=None)
def generate_packed_pairs(order: int) -> np.ndarray:
    """Generates the (x, y) orders of each basis function in packed order.

    Args:
        order: The maximum order of the basis.
    Returns:
        A read-only numpy array of shape (compute_size(order), 2) whose
        i-th row holds the (x, y) orders of the i-th packed basis function.
    """
    pairs = np.array(
        [(i.x, i.y) for i in iterate_packed(order)], dtype=np.int32
    ).reshape(-1, 2)
    pairs.setflags(write=False)
    return pairs
