"""Multi-view triangulation of tracks from resolved poses."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..errors import StageOrderError
from ..math.camera import camera_center, normalize_points, point_depth, project
from ..models.entities import Observation, Track
from ..models.settings import TriangulationSettings
from ..models.state import ReconstructionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraSnapshot:
    """Read-only pose and calibration of one view."""

    R: np.ndarray
    t: np.ndarray
    intrinsics: np.ndarray
    distortion: np.ndarray

    @property
    def center(self) -> np.ndarray:
        return camera_center(self.R, self.t)


@dataclass
class TriangulationReport:
    """Outcome of triangulating a set of tracks."""

    triangulated: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    rejected_track_ids: List[int] = field(default_factory=list)
    pruned_observations: int = 0

    @property
    def n_rejected(self) -> int:
        return len(self.rejected_track_ids)

    def summary(self) -> Dict[str, int]:
        return {
            "triangulated": self.triangulated,
            "rejected": self.n_rejected,
            "pruned_observations": self.pruned_observations,
            **{f"rejected_{reason}": count for reason, count in sorted(self.rejected.items())},
        }


def triangulate_multiview(poses: List[Tuple[np.ndarray, np.ndarray]], points: np.ndarray) -> Optional[np.ndarray]:
    """Linear (DLT) triangulation from normalized image coordinates.

    Args:
        poses: World-to-camera (R, t) per observation
        points: Nx2 normalized image coordinates, one row per pose

    Returns:
        3D point, or None when the solution lies at infinity
    """
    points = np.atleast_2d(points)
    if len(poses) != len(points) or len(poses) < 2:
        raise ValueError("Triangulation needs at least two poses with one point each")

    A = np.empty((2 * len(poses), 4))
    for k, ((R, t), (x, y)) in enumerate(zip(poses, points)):
        P = np.hstack([R, t.reshape(3, 1)])
        A[2 * k] = x * P[2] - P[0]
        A[2 * k + 1] = y * P[2] - P[1]

    _, _, Vt = np.linalg.svd(A)
    X_h = Vt[-1]
    if abs(X_h[3]) < 1e-12:
        return None
    X = X_h[:3] / X_h[3]
    return X if np.all(np.isfinite(X)) else None


def triangulation_angle(centers: np.ndarray, X: np.ndarray) -> float:
    """Largest angle (degrees) between any two viewing rays of a point."""
    rays = X - np.asarray(centers)
    norms = np.linalg.norm(rays, axis=1)
    if np.any(norms < 1e-12):
        return 0.0
    rays = rays / norms[:, None]
    cosines = np.clip(rays @ rays.T, -1.0, 1.0)
    return float(np.degrees(np.arccos(np.min(cosines))))


def _observation_checks(
    cameras: Dict[int, CameraSnapshot],
    observations: List[Observation],
    X: np.ndarray,
    max_error: float
) -> np.ndarray:
    """Mask of observations with positive depth and reprojection error within max_error."""
    valid = np.empty(len(observations), dtype=bool)
    for k, obs in enumerate(observations):
        camera = cameras[obs.view_id]
        depth = point_depth(camera.R, camera.t, X)[0]
        uv = project(camera.intrinsics, camera.R, camera.t, X, camera.distortion)[0]
        error = np.linalg.norm(uv - obs.to_numpy())
        valid[k] = depth > 0 and np.isfinite(error) and error <= max_error
    return valid


def triangulate_track(
    track: Track,
    cameras: Dict[int, CameraSnapshot],
    settings: TriangulationSettings
) -> Tuple[Optional[np.ndarray], List[Observation], str]:
    """Triangulate one track, pruning observations that fail validation.

    Returns:
        Tuple of (point or None, retained observations, outcome) where outcome
        is "ok" or the rejection reason
    """
    observations = [obs for obs in track.observations if obs.view_id in cameras]

    while True:
        if len(observations) < settings.min_observations:
            return None, observations, "too_few_observations"

        poses = [(cameras[obs.view_id].R, cameras[obs.view_id].t) for obs in observations]
        points = np.vstack([
            normalize_points(cameras[obs.view_id].intrinsics, obs.to_numpy(), cameras[obs.view_id].distortion)
            for obs in observations
        ])
        X = triangulate_multiview(poses, points)
        if X is None:
            return None, observations, "degenerate"

        valid = _observation_checks(cameras, observations, X, settings.max_reprojection_error)
        if np.all(valid):
            break
        if not np.any(valid):
            return None, observations, "reprojection"
        observations = [obs for obs, ok in zip(observations, valid) if ok]

    centers = np.array([cameras[obs.view_id].center for obs in observations])
    if triangulation_angle(centers, X) < settings.min_triangulation_angle_deg:
        return None, observations, "angle"

    return X, observations, "ok"


def snapshot_cameras(state: ReconstructionState) -> Dict[int, CameraSnapshot]:
    """Pose and calibration of every posed view."""
    cameras = {}
    for view_id in state.posed_view_ids():
        R, t = state.pose(view_id)
        intrinsic = state.intrinsic_for(view_id)
        cameras[view_id] = CameraSnapshot(
            R=R.copy(),
            t=t.copy(),
            intrinsics=intrinsic.get_intrinsics(),
            distortion=intrinsic.get_distortion(),
        )
    return cameras


def triangulate_tracks(
    state: ReconstructionState,
    tracks: Optional[Dict[int, Track]] = None,
    settings: Optional[TriangulationSettings] = None
) -> TriangulationReport:
    """Triangulate tracks against the posed views of a state.

    Observations in un-posed views are ignored. Valid tracks replace
    state.tracks once all tracks are processed; rejected tracks are counted
    in the report.

    Args:
        state: Reconstruction state with resolved poses
        tracks: Tracks to triangulate (default: state.tracks)
        settings: Validity thresholds

    Returns:
        TriangulationReport

    Raises:
        StageOrderError: No view has a resolved pose
    """
    settings = settings or TriangulationSettings()
    tracks = state.tracks if tracks is None else tracks

    cameras = snapshot_cameras(state)
    if not cameras:
        raise StageOrderError("Translation averaging must run before triangulation: no posed views")

    items = sorted(tracks.items())

    def work(item):
        return triangulate_track(item[1], cameras, settings)

    if settings.max_workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
            outcomes = list(executor.map(work, items))
    else:
        outcomes = [work(item) for item in items]

    report = TriangulationReport()
    valid_tracks: Dict[int, Track] = {}
    for (track_id, track), (X, observations, outcome) in zip(items, outcomes):
        if outcome != "ok":
            report.rejected[outcome] = report.rejected.get(outcome, 0) + 1
            report.rejected_track_ids.append(track_id)
            continue
        report.pruned_observations += len(track.observations) - len(observations)
        valid = track.model_copy(deep=True)
        valid.observations = [obs.model_copy() for obs in observations]
        valid.set_from_numpy(X)
        valid_tracks[track_id] = valid
        report.triangulated += 1

    state.tracks = valid_tracks
    logger.info(
        f"Triangulated {report.triangulated} of {len(items)} tracks "
        f"({report.n_rejected} rejected, {report.pruned_observations} observations pruned)"
    )
    return report
