from .builder import build_model, build_model_derivative, compute_workspace
