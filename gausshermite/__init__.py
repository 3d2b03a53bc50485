import jax

# Process wide. Without it jax silently demotes float64 coordinates to
# float32.
jax.config.update("jax_enable_x64", True)

from .types import Array

from . import basis
from .basis.packed import PackedIndex
from .basis.evaluator import HermiteEvaluator, compute_inner_product_matrix

from . import ellipses
from .ellipses.core import Axes, Ellipse

from . import integrals
from .integrals.fast_exp import fast_exp

from . import model
from .model.builder import BuilderOptions, ModelBuilder

from . import analysis
from .analysis.grid import PixelGrid
