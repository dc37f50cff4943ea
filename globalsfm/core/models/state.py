"""Mutable reconstruction state threaded through the pipeline stages."""

import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .entities import Intrinsic, SceneDescription, Track, View
from ..errors import EmptyReconstructionError, StageOrderError
from ..math.camera import camera_center, point_depth, project
from ..math.so3 import so3_log


@dataclass
class ReconstructionState:
    """Absolute poses, intrinsics and tracks at one point of the pipeline.

    Rotations and translations are world-to-camera and keyed by view ID.
    Stages write their results through the set_* methods once they finish.
    """

    views: Dict[int, View]
    intrinsics: Dict[int, Intrinsic]
    rotations: Dict[int, np.ndarray] = field(default_factory=dict)
    translations: Dict[int, np.ndarray] = field(default_factory=dict)
    tracks: Dict[int, Track] = field(default_factory=dict)

    @classmethod
    def from_scene(cls, scene: SceneDescription) -> "ReconstructionState":
        """Create an empty state (no poses, no tracks) for a scene."""
        return cls(
            views={view.id: view.model_copy(deep=True) for view in scene.views},
            intrinsics={intrinsic.id: intrinsic.model_copy(deep=True) for intrinsic in scene.intrinsics},
        )

    def copy(self) -> "ReconstructionState":
        """Deep copy of the state."""
        return ReconstructionState(
            views={vid: view.model_copy(deep=True) for vid, view in self.views.items()},
            intrinsics={iid: intr.model_copy(deep=True) for iid, intr in self.intrinsics.items()},
            rotations={vid: R.copy() for vid, R in self.rotations.items()},
            translations={vid: t.copy() for vid, t in self.translations.items()},
            tracks={tid: track.model_copy(deep=True) for tid, track in self.tracks.items()},
        )

    def set_rotations(self, rotations: Dict[int, np.ndarray]) -> None:
        """Replace absolute rotations; translations of changed views are cleared."""
        for view_id in rotations:
            if view_id not in self.views:
                raise ValueError(f"Rotation given for unknown view {view_id}")
        self.rotations = {vid: np.array(R, dtype=float) for vid, R in rotations.items()}
        self.translations = {
            vid: t for vid, t in self.translations.items() if vid in self.rotations
        }

    def set_translations(self, translations: Dict[int, np.ndarray]) -> None:
        """Replace absolute translations; requires rotations for the same views."""
        self.require_rotations(translations.keys())
        self.translations = {vid: np.array(t, dtype=float) for vid, t in translations.items()}

    def require_rotations(self, view_ids: Iterable[int]) -> None:
        """Raise StageOrderError unless every view has a resolved rotation."""
        missing = sorted(vid for vid in view_ids if vid not in self.rotations)
        if missing:
            raise StageOrderError(
                f"Rotation averaging must run first: views {missing} have no rotation"
            )

    def require_translations(self, view_ids: Iterable[int]) -> None:
        """Raise StageOrderError unless every view has a resolved pose."""
        view_ids = list(view_ids)
        self.require_rotations(view_ids)
        missing = sorted(vid for vid in view_ids if vid not in self.translations)
        if missing:
            raise StageOrderError(
                f"Translation averaging must run first: views {missing} have no translation"
            )

    def posed_view_ids(self) -> List[int]:
        """Views with both rotation and translation."""
        return sorted(vid for vid in self.rotations if vid in self.translations)

    def pose(self, view_id: int) -> Tuple[np.ndarray, np.ndarray]:
        """World-to-camera (R, t) of a posed view."""
        self.require_translations([view_id])
        return self.rotations[view_id], self.translations[view_id]

    def camera_center(self, view_id: int) -> np.ndarray:
        """Camera center of a posed view in world coordinates."""
        R, t = self.pose(view_id)
        return camera_center(R, t)

    def intrinsic_for(self, view_id: int) -> Intrinsic:
        """Intrinsic shared by a view."""
        return self.intrinsics[self.views[view_id].intrinsic_id]

    def project(self, view_id: int, X: np.ndarray) -> np.ndarray:
        """Project world points into a posed view (Nx2 pixels)."""
        R, t = self.pose(view_id)
        intrinsic = self.intrinsic_for(view_id)
        return project(intrinsic.get_intrinsics(), R, t, X, intrinsic.get_distortion())

    def depth(self, view_id: int, X: np.ndarray) -> np.ndarray:
        """Depth of world points in a posed view."""
        R, t = self.pose(view_id)
        return point_depth(R, t, X)

    def observation_errors(self, track: Track) -> np.ndarray:
        """Reprojection error (pixels) of each observation of a triangulated track."""
        X = track.to_numpy()
        if X is None:
            raise StageOrderError(f"Track {track.id} is not triangulated")

        errors = np.empty(len(track.observations))
        for k, obs in enumerate(track.observations):
            uv = self.project(obs.view_id, X)[0]
            errors[k] = np.linalg.norm(uv - obs.to_numpy())
        return np.where(np.isnan(errors), np.inf, errors)

    def reprojection_errors(self) -> np.ndarray:
        """Reprojection errors of all observations of all tracks."""
        if not self.tracks:
            return np.array([])
        return np.concatenate([self.observation_errors(track) for track in self.tracks.values()])

    def mean_reprojection_error(self) -> float:
        """Mean reprojection error over all observations (pixels)."""
        errors = self.reprojection_errors()
        return float(np.mean(errors)) if errors.size else 0.0

    def rmse(self) -> float:
        """Root mean squared reprojection error over all observations (pixels)."""
        errors = self.reprojection_errors()
        return float(np.sqrt(np.mean(errors**2))) if errors.size else 0.0

    def validate_complete(self) -> None:
        """Check the state is fully resolved for export.

        Raises:
            EmptyReconstructionError: No posed views or no valid tracks
            StageOrderError: A track is untriangulated or refers to an un-posed view
        """
        posed = set(self.posed_view_ids())
        if not posed:
            raise EmptyReconstructionError("Reconstruction has no posed views")
        if not self.tracks:
            raise EmptyReconstructionError("Reconstruction has no valid tracks")

        for track in self.tracks.values():
            if not track.is_triangulated():
                raise StageOrderError(f"Track {track.id} is not triangulated")
            if len(track.observations) < 2:
                raise StageOrderError(f"Track {track.id} has fewer than two observations")
            unposed = [vid for vid in track.view_ids() if vid not in posed]
            if unposed:
                raise StageOrderError(f"Track {track.id} is observed by un-posed views {unposed}")

    def to_scene(self, features: Optional[Dict[int, List[List[float]]]] = None) -> SceneDescription:
        """Export posed views, intrinsics and tracks as a scene description.

        Un-posed views are left out.
        """
        views = []
        for view_id in self.posed_view_ids():
            view = self.views[view_id].model_copy(deep=True)
            view.rotation = so3_log(self.rotations[view_id]).tolist()
            view.translation = self.translations[view_id].tolist()
            views.append(view)

        used_intrinsics = {view.intrinsic_id for view in views}
        return SceneDescription(
            views=views,
            intrinsics=[
                intr.model_copy(deep=True)
                for iid, intr in sorted(self.intrinsics.items()) if iid in used_intrinsics
            ],
            features=features or {},
            tracks=[track.model_copy(deep=True) for _, track in sorted(self.tracks.items())],
        )

    def summary(self) -> Dict[str, float]:
        """Counts and error statistics."""
        return {
            "views": len(self.views),
            "posed_views": len(self.posed_view_ids()),
            "tracks": len(self.tracks),
            "observations": sum(len(track.observations) for track in self.tracks.values()),
            "rmse": self.rmse(),
        }
