from .fast_exp import FAST_EXP_RELATIVE_TOLERANCE
