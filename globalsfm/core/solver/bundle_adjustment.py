"""Bundle adjustment of a reconstruction state with outlier removal between passes."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .diagnostics import compute_reprojection_errors
from .scipy_solver import SciPySolver, SolverOptions
from ..errors import StageOrderError
from ..models.results import SolveResult
from ..models.settings import BundleAdjustmentSettings
from ..models.state import ReconstructionState
from ..optimization.problem import BundleAdjustmentProblem, RefineMask

logger = logging.getLogger(__name__)


@dataclass
class BundleAdjustmentReport:
    """Outcome of bundle adjustment (one or two passes)."""

    converged: bool
    initial_cost: float
    final_cost: float
    initial_rmse: float
    final_rmse: float
    passes: List[SolveResult] = field(default_factory=list)
    accepted: List[bool] = field(default_factory=list)
    removed_observations: int = 0
    removed_tracks: List[int] = field(default_factory=list)

    def summary(self) -> Dict[str, float]:
        return {
            "converged": self.converged,
            "passes": len(self.passes),
            "initial_cost": self.initial_cost,
            "final_cost": self.final_cost,
            "initial_rmse": self.initial_rmse,
            "final_rmse": self.final_rmse,
            "removed_observations": self.removed_observations,
            "removed_tracks": len(self.removed_tracks),
        }


def _solver_options(settings: BundleAdjustmentSettings) -> SolverOptions:
    return SolverOptions(
        method=settings.method,
        max_iterations=settings.max_iterations,
        tolerance=settings.tolerance,
        loss=settings.loss,
        jacobian=settings.jacobian,
        check_jacobian=settings.check_jacobian,
    )


def bundle_adjust(
    state: ReconstructionState,
    settings: Optional[BundleAdjustmentSettings] = None,
    mask: Optional[RefineMask] = None
) -> Tuple[SolveResult, bool]:
    """Jointly refine poses, track points and the masked intrinsics.

    The state is updated only when the squared reprojection cost decreases;
    otherwise it is left as it was. Solver failures are reported, not raised.

    Args:
        state: Reconstruction state with posed views and triangulated tracks
        settings: Solver settings and refine flags
        mask: Refine mask (default: from the settings' refine flags)

    Returns:
        Tuple of (solve result, whether the solution was written to the state)

    Raises:
        StageOrderError: State has no triangulated track
    """
    settings = settings or BundleAdjustmentSettings()
    if mask is None:
        mask = RefineMask.from_flags(settings.refine_focal_and_principal_point, settings.refine_distortion)

    if not any(track.is_triangulated() for track in state.tracks.values()):
        raise StageOrderError("Triangulation must run before bundle adjustment: no triangulated tracks")

    problem = BundleAdjustmentProblem(state, mask)
    factor_graph = problem.build_factor_graph()
    logger.debug(f"Bundle adjustment problem: {problem.get_optimization_summary()}")

    solver = SciPySolver(_solver_options(settings))
    result = solver.solve(factor_graph)
    history = solver.get_cost_history()
    if history:
        logger.debug(f"Cost over {len(history)} evaluations: {history[0]:.4g} -> {min(history):.4g}")
    stats = compute_reprojection_errors(factor_graph, factor_graph.compute_all_residuals())
    logger.debug(f"Reprojection errors after adjustment: {stats}")

    accepted = result.final_cost < result.initial_cost
    if accepted:
        problem.extract_solution_to_state()
    else:
        logger.warning(
            f"Bundle adjustment did not lower the cost ({result.initial_cost:.4g} -> {result.final_cost:.4g}); "
            f"keeping the previous state"
        )

    if not result.success:
        logger.warning(f"Bundle adjustment did not converge: {result.convergence_reason}")

    return result, accepted


def remove_outlier_observations(state: ReconstructionState, threshold: float, min_observations: int = 2) -> Tuple[int, List[int]]:
    """Drop observations whose reprojection error exceeds threshold.

    Tracks left with fewer than min_observations observations are removed.

    Returns:
        Tuple of (removed observation count, removed track IDs)
    """
    removed_observations = 0
    removed_tracks = []
    for track_id in sorted(state.tracks):
        track = state.tracks[track_id]
        errors = state.observation_errors(track)
        keep = errors <= threshold
        if np.all(keep):
            continue
        removed_observations += int(np.count_nonzero(~keep))
        track.observations = [obs for obs, ok in zip(track.observations, keep) if ok]
        if len(track.observations) < min_observations:
            removed_tracks.append(track_id)

    for track_id in removed_tracks:
        del state.tracks[track_id]

    if removed_observations:
        logger.info(
            f"Removed {removed_observations} outlier observations above {threshold:.2f} px "
            f"and {len(removed_tracks)} tracks"
        )
    return removed_observations, removed_tracks


def refine_reconstruction(
    state: ReconstructionState,
    settings: Optional[BundleAdjustmentSettings] = None
) -> BundleAdjustmentReport:
    """Bundle adjust, remove outlier observations, and adjust again if any were removed.

    Args:
        state: Reconstruction state, refined in place
        settings: Solver settings and refine flags

    Returns:
        BundleAdjustmentReport
    """
    settings = settings or BundleAdjustmentSettings()
    if settings.refine_distortion and not settings.refine_focal_and_principal_point:
        logger.warning("Refining distortion while focal length and principal point stay fixed")

    initial_rmse = state.rmse()
    report = BundleAdjustmentReport(
        converged=False,
        initial_cost=0.0,
        final_cost=0.0,
        initial_rmse=initial_rmse,
        final_rmse=initial_rmse,
    )

    result, accepted = bundle_adjust(state, settings)
    report.passes.append(result)
    report.accepted.append(accepted)
    report.initial_cost = result.initial_cost

    removed, removed_tracks = remove_outlier_observations(state, settings.outlier_threshold)
    report.removed_observations = removed
    report.removed_tracks = removed_tracks

    if removed and state.tracks:
        result, accepted = bundle_adjust(state, settings)
        report.passes.append(result)
        report.accepted.append(accepted)

    report.converged = result.success
    report.final_cost = result.final_cost if accepted else result.initial_cost
    report.final_rmse = state.rmse()

    logger.info(
        f"Bundle adjustment: RMSE {report.initial_rmse:.3f} -> {report.final_rmse:.3f} px "
        f"in {len(report.passes)} passes"
    )
    return report
