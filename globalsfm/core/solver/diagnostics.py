"""Solver diagnostics and analysis tools."""

import numpy as np
from typing import Dict, List, Any
from scipy.linalg import svd

from ..optimization.factor_graph import FactorGraph


class SolveDiagnostics:
    """Diagnostics and analysis for optimization results."""

    def __init__(self, top_k: int = 10):
        self.top_k = top_k

    def compute_diagnostics(self, factor_graph: FactorGraph, residuals: np.ndarray) -> Dict[str, Any]:
        """Compute residual diagnostics.

        Args:
            factor_graph: Factor graph
            residuals: Final residual vector

        Returns:
            Dictionary with largest residuals and overall statistics
        """
        per_factor = self._compute_per_factor_residuals(factor_graph, residuals)
        largest = sorted(per_factor.items(), key=lambda item: item[1], reverse=True)[:self.top_k]
        return {
            "largest_residuals": largest,
            "statistics": self._compute_statistics(residuals),
        }

    def _compute_per_factor_residuals(self, factor_graph: FactorGraph, residuals: np.ndarray) -> Dict[str, float]:
        """Residual norm of each factor."""
        per_factor = {}
        residual_offset = 0

        for factor_id in factor_graph.get_factor_ids():
            residual_dim = factor_graph.factors[factor_id].residual_dimension()
            if residual_offset + residual_dim <= len(residuals):
                block = residuals[residual_offset:residual_offset + residual_dim]
                per_factor[factor_id] = float(np.linalg.norm(block))
            residual_offset += residual_dim

        return per_factor

    def _compute_statistics(self, residuals: np.ndarray) -> Dict[str, float]:
        """Compute overall residual statistics."""
        if len(residuals) == 0:
            return {
                "total_residuals": 0,
                "rms_residual": 0.0,
                "max_residual": 0.0,
                "mean_residual": 0.0,
                "std_residual": 0.0
            }

        return {
            "total_residuals": len(residuals),
            "rms_residual": float(np.sqrt(np.mean(residuals**2))),
            "max_residual": float(np.max(np.abs(residuals))),
            "mean_residual": float(np.mean(residuals)),
            "std_residual": float(np.std(residuals))
        }


def analyze_jacobian_rank(jacobian: np.ndarray, tolerance: float = 1e-6) -> Dict[str, Any]:
    """Analyze matrix rank and condition.

    Args:
        jacobian: Dense Jacobian (or design) matrix
        tolerance: Singular values below tolerance * largest count as zero

    Returns:
        Dictionary with rank analysis
    """
    if jacobian.size == 0:
        return {
            "rank": 0,
            "full_rank": True,
            "condition_number": 1.0,
            "singular_values": [],
            "nullspace_dimension": jacobian.shape[1] if jacobian.ndim == 2 else 0
        }

    s = svd(jacobian, compute_uv=False)

    rank = int(np.sum(s > tolerance * s[0])) if s[0] > 0 else 0
    full_rank = rank == min(jacobian.shape)
    nullspace_dim = jacobian.shape[1] - rank
    condition_number = s[0] / s[-1] if s[-1] > 0 else np.inf

    return {
        "rank": rank,
        "full_rank": bool(full_rank),
        "condition_number": float(condition_number),
        "singular_values": s.tolist(),
        "nullspace_dimension": int(nullspace_dim),
        "matrix_shape": jacobian.shape,
        "largest_singular_value": float(s[0]),
        "smallest_singular_value": float(s[-1])
    }


def compute_reprojection_errors(factor_graph: FactorGraph, residuals: np.ndarray) -> Dict[str, Any]:
    """Compute reprojection error statistics.

    Args:
        factor_graph: Factor graph
        residuals: Residual vector (pixels)

    Returns:
        Dictionary with reprojection error analysis
    """
    errors: List[float] = []
    residual_offset = 0

    for factor_id in factor_graph.get_factor_ids():
        factor = factor_graph.factors[factor_id]
        residual_dim = factor.residual_dimension()
        if factor_id.startswith("reprojection_") and residual_offset + residual_dim <= len(residuals):
            errors.append(float(np.linalg.norm(residuals[residual_offset:residual_offset + residual_dim])))
        residual_offset += residual_dim

    if not errors:
        return {"n_observations": 0}

    errors = np.array(errors)
    return {
        "n_observations": len(errors),
        "mean_error": float(np.mean(errors)),
        "median_error": float(np.median(errors)),
        "max_error": float(np.max(errors)),
        "rms_error": float(np.sqrt(np.mean(errors**2))),
        "percentile_95": float(np.percentile(errors, 95)),
    }
