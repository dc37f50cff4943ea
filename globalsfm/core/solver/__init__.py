"""Nonlinear optimization solvers for globalsfm."""

from .scipy_solver import SciPySolver, SolverOptions
from .diagnostics import SolveDiagnostics, analyze_jacobian_rank, compute_reprojection_errors
from .bundle_adjustment import BundleAdjustmentReport, bundle_adjust, refine_reconstruction, remove_outlier_observations

__all__ = [
    "SciPySolver",
    "SolverOptions",
    "SolveDiagnostics",
    "analyze_jacobian_rank",
    "compute_reprojection_errors",
    "BundleAdjustmentReport",
    "bundle_adjust",
    "refine_reconstruction",
    "remove_outlier_observations",
]
