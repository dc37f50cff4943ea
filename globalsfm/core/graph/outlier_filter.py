"""Rejection of inconsistent view graph edges around motion averaging."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .view_graph import ViewGraph
from ..averaging.rotation import RotationAveragingResult, average_rotations, rotation_residuals
from ..averaging.translation import TranslationAveragingResult, average_translations, translation_residuals
from ..models.settings import (
    OutlierFilterSettings,
    RotationAveragingMethod,
    RotationAveragingSettings,
    TranslationAveragingMethod,
    TranslationAveragingSettings,
)
from ..models.state import ReconstructionState

logger = logging.getLogger(__name__)


@dataclass
class FilterReport:
    """Edges rejected (or kept because they are bridges) by one filter pass."""

    removed_edges: List[Tuple[int, int]] = field(default_factory=list)
    flagged_edges: List[Tuple[int, int]] = field(default_factory=list)

    def extend(self, other: "FilterReport") -> None:
        self.removed_edges.extend(other.removed_edges)
        for pair in other.flagged_edges:
            if pair not in self.flagged_edges:
                self.flagged_edges.append(pair)


def filter_edges(graph: ViewGraph, residuals: np.ndarray, threshold: float) -> FilterReport:
    """Deactivate active edges whose residual exceeds threshold.

    Residuals are evaluated beforehand for all edges; candidates are removed in
    order of decreasing residual. An edge whose removal would disconnect its
    component is kept active and flagged instead.

    Args:
        graph: View graph, modified in place
        residuals: Per-edge residual (NaN for edges without an estimate)
        threshold: Rejection threshold in the residual's unit

    Returns:
        FilterReport with removed and flagged view pairs
    """
    residuals = np.asarray(residuals, dtype=float)
    if residuals.shape != (graph.n_edges,):
        raise ValueError(f"Expected {graph.n_edges} residuals, got {residuals.shape}")

    candidates = [
        e for e in graph.active_edge_indices()
        if np.isfinite(residuals[e]) and residuals[e] > threshold
    ]
    candidates.sort(key=lambda e: residuals[e], reverse=True)

    report = FilterReport()
    for e in candidates:
        pair = graph.edge_views(e)
        if graph.would_disconnect(e):
            logger.warning(
                f"Edge {pair} has residual {residuals[e]:.2f} above {threshold:.2f} "
                f"but is the only link between its views; keeping it"
            )
            report.flagged_edges.append(pair)
            continue
        graph.deactivate(e)
        report.removed_edges.append(pair)
        logger.debug(f"Rejected edge {pair} with residual {residuals[e]:.2f}")

    return report


def robust_rotation_averaging(
    graph: ViewGraph,
    method=RotationAveragingMethod.L2,
    settings: Optional[RotationAveragingSettings] = None,
    filter_settings: Optional[OutlierFilterSettings] = None,
) -> Tuple[RotationAveragingResult, FilterReport]:
    """Alternate rotation averaging and edge rejection until no edge is removed.

    Returns:
        Tuple of (last averaging result, accumulated FilterReport)
    """
    filter_settings = filter_settings or OutlierFilterSettings()
    report = FilterReport()

    result = average_rotations(graph, method, settings)
    for round_index in range(filter_settings.max_iterations):
        residuals = rotation_residuals(graph, result.rotations)
        step = filter_edges(graph, residuals, filter_settings.max_rotation_residual_deg)
        report.extend(step)
        if not step.removed_edges:
            break
        logger.info(
            f"Rotation filter round {round_index + 1}: rejected {len(step.removed_edges)} edges, re-averaging"
        )
        result = average_rotations(graph, method, settings)

    return result, report


def robust_translation_averaging(
    graph: ViewGraph,
    state: ReconstructionState,
    method=TranslationAveragingMethod.L1,
    settings: Optional[TranslationAveragingSettings] = None,
    filter_settings: Optional[OutlierFilterSettings] = None,
) -> Tuple[TranslationAveragingResult, FilterReport]:
    """Alternate translation averaging and edge rejection until no edge is removed.

    Returns:
        Tuple of (last averaging result, accumulated FilterReport)
    """
    filter_settings = filter_settings or OutlierFilterSettings()
    report = FilterReport()

    result = average_translations(graph, state, method, settings)
    for round_index in range(filter_settings.max_iterations):
        residuals = translation_residuals(graph, state.rotations, result.centers)
        step = filter_edges(graph, residuals, filter_settings.max_translation_residual_deg)
        report.extend(step)
        if not step.removed_edges:
            break
        logger.info(
            f"Translation filter round {round_index + 1}: rejected {len(step.removed_edges)} edges, re-averaging"
        )
        result = average_translations(graph, state, method, settings)

    return result, report
