from .grid import generate_coordinates, build_centered_grid
