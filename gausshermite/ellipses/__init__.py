from .core import grid_transform_from_parameters
