from .packed import (
    compute_offset,
    compute_index,
    compute_size,
    compute_order,
    iterate_packed,
    generate_packed_pairs,
)
from .hermite import fill_hermite_1d, fill_moments_1d, hermite_functions_jax
from . import evaluator
