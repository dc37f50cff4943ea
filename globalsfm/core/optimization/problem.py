"""Bundle adjustment problem builder for a reconstruction state."""

import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from .factor_graph import FactorGraph, Variable, VariableType
from .residuals import ReprojectionResidual
from ..math.so3 import so3_exp, so3_log
from ..models.state import ReconstructionState


@dataclass
class RefineMask:
    """Which parameter groups bundle adjustment may change.

    Poses and track points are refined unless held; intrinsics follow the
    two refine flags.
    """

    refine_focal_and_principal_point: bool = True
    refine_distortion: bool = True
    hold_views: Set[int] = field(default_factory=set)
    hold_tracks: Set[int] = field(default_factory=set)

    @classmethod
    def from_flags(cls, refine_focal_and_principal_point: bool, refine_distortion: bool) -> "RefineMask":
        return cls(
            refine_focal_and_principal_point=refine_focal_and_principal_point,
            refine_distortion=refine_distortion,
        )


def rotation_id(view_id: int) -> str:
    return f"view_{view_id}_rotation"


def translation_id(view_id: int) -> str:
    return f"view_{view_id}_translation"


def point_id(track_id: int) -> str:
    return f"track_{track_id}"


def intrinsic_id(intr_id: int) -> str:
    return f"intrinsic_{intr_id}"


def distortion_id(intr_id: int) -> str:
    return f"intrinsic_{intr_id}_distortion"


class BundleAdjustmentProblem:
    """Builder for bundle adjustment factor graphs from a reconstruction state."""

    def __init__(self, state: ReconstructionState, mask: Optional[RefineMask] = None):
        """Initialize problem.

        Args:
            state: Reconstruction state with posed views and triangulated tracks
            mask: Parameter groups to refine (default: everything)
        """
        self.state = state
        self.mask = mask or RefineMask()
        self.factor_graph = FactorGraph()

    def build_factor_graph(self) -> FactorGraph:
        """Build factor graph from the state.

        Returns:
            Factor graph with one reprojection factor per observation of a
            triangulated track in a posed view
        """
        self.factor_graph = FactorGraph()

        posed = set(self.state.posed_view_ids())
        observed_views = set()
        for track in self.state.tracks.values():
            if track.is_triangulated():
                observed_views.update(vid for vid in track.view_ids() if vid in posed)

        self._add_intrinsic_variables(observed_views)
        self._add_view_variables(observed_views)
        self._add_track_variables()
        self._add_reprojection_factors(observed_views)
        self.apply_mask(self.mask)

        return self.factor_graph

    def _add_intrinsic_variables(self, view_ids: Set[int]) -> None:
        used = sorted({self.state.views[vid].intrinsic_id for vid in view_ids})
        for intr_id in used:
            intrinsic = self.state.intrinsics[intr_id]
            self.factor_graph.add_variable(Variable(
                id=intrinsic_id(intr_id),
                type=VariableType.INTRINSIC,
                size=3,
                value=intrinsic.get_intrinsics(),
                lower_bounds=np.array([1.0, -np.inf, -np.inf]),
            ))
            if intrinsic.has_distortion():
                self.factor_graph.add_variable(Variable(
                    id=distortion_id(intr_id),
                    type=VariableType.DISTORTION,
                    size=3,
                    value=intrinsic.get_distortion(),
                ))

    def _add_view_variables(self, view_ids: Set[int]) -> None:
        for view_id in sorted(view_ids):
            R, t = self.state.pose(view_id)
            self.factor_graph.add_variable(Variable(
                id=rotation_id(view_id),
                type=VariableType.VIEW_ROTATION,
                size=3,
                value=so3_log(R),
            ))
            self.factor_graph.add_variable(Variable(
                id=translation_id(view_id),
                type=VariableType.VIEW_TRANSLATION,
                size=3,
                value=t,
            ))

    def _add_track_variables(self) -> None:
        for track_id, track in sorted(self.state.tracks.items()):
            if track.is_triangulated():
                self.factor_graph.add_variable(Variable(
                    id=point_id(track_id),
                    type=VariableType.TRACK_POINT,
                    size=3,
                    value=track.to_numpy(),
                ))

    def _add_reprojection_factors(self, view_ids: Set[int]) -> None:
        for track_id, track in sorted(self.state.tracks.items()):
            if not track.is_triangulated():
                continue
            for obs in track.observations:
                if obs.view_id not in view_ids:
                    continue
                intr_id = self.state.views[obs.view_id].intrinsic_id
                has_distortion = self.state.intrinsics[intr_id].has_distortion()
                self.factor_graph.add_factor(ReprojectionResidual(
                    factor_id=f"reprojection_{track_id}_{obs.view_id}",
                    point_id=point_id(track_id),
                    rotation_id=rotation_id(obs.view_id),
                    translation_id=translation_id(obs.view_id),
                    intrinsic_id=intrinsic_id(intr_id),
                    observed_u=obs.x,
                    observed_v=obs.y,
                    distortion_id=distortion_id(intr_id) if has_distortion else None,
                ))

    def apply_mask(self, mask: RefineMask) -> None:
        """Set which variables are constant without rebuilding factors."""
        self.mask = mask
        for variable in self.factor_graph.variables.values():
            if variable.type == VariableType.INTRINSIC:
                variable.is_constant = not mask.refine_focal_and_principal_point
            elif variable.type == VariableType.DISTORTION:
                variable.is_constant = not mask.refine_distortion
            elif variable.type in (VariableType.VIEW_ROTATION, VariableType.VIEW_TRANSLATION):
                view_id = int(variable.id.split("_")[1])
                variable.is_constant = view_id in mask.hold_views
            elif variable.type == VariableType.TRACK_POINT:
                track_id = int(variable.id.split("_")[1])
                variable.is_constant = track_id in mask.hold_tracks

    def extract_solution_to_state(self, state: Optional[ReconstructionState] = None) -> None:
        """Write variable values back into a state (default: the source state)."""
        state = state or self.state
        variables = self.factor_graph.variables

        rotations = dict(state.rotations)
        translations = dict(state.translations)
        for view_id in state.posed_view_ids():
            if rotation_id(view_id) in variables:
                rotations[view_id] = so3_exp(variables[rotation_id(view_id)].get_value())
                translations[view_id] = variables[translation_id(view_id)].get_value()
        state.set_rotations(rotations)
        state.set_translations(translations)

        for track_id, track in state.tracks.items():
            if point_id(track_id) in variables:
                track.set_from_numpy(variables[point_id(track_id)].get_value())

        for intr_id, intrinsic in state.intrinsics.items():
            if intrinsic_id(intr_id) in variables:
                intrinsic.set_intrinsics(variables[intrinsic_id(intr_id)].get_value())
            if distortion_id(intr_id) in variables:
                intrinsic.set_distortion(variables[distortion_id(intr_id)].get_value())

    def get_optimization_summary(self) -> Dict[str, Any]:
        """Factor graph summary plus the refine flags."""
        summary = self.factor_graph.summary()
        summary["refine_focal_and_principal_point"] = self.mask.refine_focal_and_principal_point
        summary["refine_distortion"] = self.mask.refine_distortion
        return summary
