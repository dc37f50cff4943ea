"""Robust weight functions for iteratively reweighted least squares."""

import numpy as np
from typing import Callable

WeightFunction = Callable[[np.ndarray], np.ndarray]


def l2_weights(residual_norms: np.ndarray) -> np.ndarray:
    """Unit weights: plain least squares."""
    return np.ones_like(residual_norms, dtype=float)


def l1_weights(residual_norms: np.ndarray, epsilon: float = 1e-4) -> np.ndarray:
    """IRLS weights that turn a least squares step into an L1 step.

    Minimizing sum w_e |r_e|^2 with w_e = 1 / |r_e| is a fixed point of
    minimizing sum |r_e|. Norms below epsilon are clamped.

    Args:
        residual_norms: Per-block residual norms
        epsilon: Clamp for small residuals

    Returns:
        Per-block weights
    """
    return 1.0 / np.maximum(np.abs(residual_norms), epsilon)


def get_weight_function(loss_type: str = "l2", **kwargs) -> WeightFunction:
    """Look up an IRLS weight function by name.

    Args:
        loss_type: Type of loss ("l2", "l1")
        **kwargs: Additional parameters for the weight function

    Returns:
        Callable mapping residual norms to weights
    """
    if loss_type == "l2":
        return l2_weights
    elif loss_type == "l1":
        epsilon = kwargs.get("epsilon", 1e-4)
        return lambda r: l1_weights(r, epsilon)
    else:
        raise ValueError(f"Unknown loss type: {loss_type}")
