"""Synthetic scene generation utilities."""

import numpy as np
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Tuple

from ..models.entities import Intrinsic, RelativeMotion, SceneDescription, View
from ..math.camera import camera_center
from ..math.quaternions import random_quaternion
from ..math.so3 import relative_motion, so3_exp
from .visibility import add_projection_noise, check_visibility, compute_visibility_matrix, coverage_summary

Pose = Tuple[np.ndarray, np.ndarray]


@dataclass
class SyntheticScene:
    """A generated scene with its ground truth."""

    scene: SceneDescription
    motions: List[RelativeMotion]
    rotations: Dict[int, np.ndarray]
    translations: Dict[int, np.ndarray]
    points: np.ndarray
    point_features: Dict[int, Dict[int, int]] = field(default_factory=dict)
    outlier_pairs: List[Tuple[int, int]] = field(default_factory=list)
    coverage: Dict[str, float] = field(default_factory=dict)

    def centers(self) -> Dict[int, np.ndarray]:
        """Ground-truth camera centers per view."""
        return {vid: camera_center(R, self.translations[vid]) for vid, R in self.rotations.items()}


def _perturb_rotation(R: np.ndarray, noise_deg: float) -> np.ndarray:
    if noise_deg <= 0:
        return R
    axis = np.random.normal(size=3)
    axis /= np.linalg.norm(axis)
    return so3_exp(np.radians(np.random.normal(0, noise_deg)) * axis) @ R


def _random_axis() -> np.ndarray:
    q = random_quaternion()
    return q[1:] / np.linalg.norm(q[1:])


def _corrupt_rotation(R: np.ndarray) -> np.ndarray:
    """Rotate by 30 to 90 degrees about a random axis."""
    return so3_exp(np.radians(np.random.uniform(30, 90)) * _random_axis()) @ R


def _corrupt_direction(direction: np.ndarray) -> np.ndarray:
    """Tilt a unit direction by 45 to 135 degrees."""
    axis = np.cross(direction, _random_axis())
    axis /= np.linalg.norm(axis)
    return so3_exp(np.radians(np.random.uniform(45, 135)) * axis) @ direction


class SceneGenerator:
    """Generator for synthetic scenes and test data."""

    def __init__(self, seed: Optional[int] = None):
        """Initialize scene generator.

        Args:
            seed: Random seed for reproducible generation
        """
        if seed is not None:
            np.random.seed(seed)

    def generate_points(
        self,
        n_points: int,
        half_extent: float = 1.0,
        center: np.ndarray = np.zeros(3)
    ) -> np.ndarray:
        """Generate points uniformly inside an axis-aligned cube.

        Args:
            n_points: Number of points
            half_extent: Half of the cube side length
            center: Cube center [x, y, z]

        Returns:
            Nx3 array of world points
        """
        return center + np.random.uniform(-half_extent, half_extent, size=(n_points, 3))

    def generate_cameras_circle(
        self,
        n_cameras: int,
        radius: float = 5.0,
        height: float = 0.5,
        look_at: np.ndarray = np.zeros(3),
        up: np.ndarray = np.array([0.0, 0.0, 1.0])
    ) -> Dict[int, Pose]:
        """Generate cameras positioned on a horizontal circle looking at a target.

        Args:
            n_cameras: Number of cameras to generate
            radius: Radius of the circle
            height: Height of the circle above look_at
            look_at: Point to look at [x, y, z]
            up: Up vector [x, y, z]

        Returns:
            World-to-camera (R, t) per view ID (0..n_cameras-1)
        """
        poses = {}
        angles = np.linspace(0, 2 * np.pi, n_cameras, endpoint=False)

        for i, angle in enumerate(angles):
            cam_pos = look_at + np.array([radius * np.cos(angle), radius * np.sin(angle), height])

            z_cam = look_at - cam_pos  # Camera Z-axis (forward)
            z_cam = z_cam / np.linalg.norm(z_cam)

            x_cam = np.cross(z_cam, up)  # Camera X-axis (right)
            x_cam = x_cam / np.linalg.norm(x_cam)

            y_cam = np.cross(z_cam, x_cam)  # Camera Y-axis (down)

            R = np.array([x_cam, y_cam, z_cam])
            poses[i] = (R, -R @ cam_pos)

        return poses

    def generate_observations(
        self,
        points: np.ndarray,
        poses: Dict[int, Pose],
        intrinsic: Intrinsic,
        noise_std: float = 0.5
    ) -> Tuple[Dict[int, List[List[float]]], Dict[int, Dict[int, int]]]:
        """Project points into every view where they are visible.

        Args:
            points: Nx3 world points
            poses: World-to-camera (R, t) per view ID
            intrinsic: Shared intrinsic
            noise_std: Standard deviation of pixel noise

        Returns:
            Tuple of (features per view, point index -> {view ID: feature ID})
        """
        features: Dict[int, List[List[float]]] = {}
        point_features: Dict[int, Dict[int, int]] = {k: {} for k in range(len(points))}

        for view_id, (R, t) in sorted(poses.items()):
            visible, uv = check_visibility(
                intrinsic.get_intrinsics(), R, t, points, intrinsic.width, intrinsic.height,
                distortion=intrinsic.get_distortion()
            )
            indices = np.flatnonzero(visible)
            uv = add_projection_noise(uv[indices], noise_std)
            features[view_id] = uv.tolist()
            for feature_id, point_index in enumerate(indices):
                point_features[int(point_index)][view_id] = feature_id

        return features, point_features

    def generate_relative_motions(
        self,
        poses: Dict[int, Pose],
        point_features: Dict[int, Dict[int, int]],
        rotation_noise_deg: float = 0.0,
        direction_noise_deg: float = 0.0,
        outlier_fraction: float = 0.0,
        min_matches: int = 8,
        pairs: Optional[List[Tuple[int, int]]] = None
    ) -> Tuple[List[RelativeMotion], List[Tuple[int, int]]]:
        """Relative motions between views sharing enough points.

        Outlier pairs get a random rotation and direction and a reduced inlier
        count; their feature matches stay correct.

        Args:
            poses: Ground-truth world-to-camera (R, t) per view ID
            point_features: Point index -> {view ID: feature ID}
            rotation_noise_deg: Standard deviation of rotation noise
            direction_noise_deg: Standard deviation of direction noise
            outlier_fraction: Fraction of pairs replaced by random motions
            min_matches: Minimum shared points for a pair to get a motion
            pairs: Explicit view pairs (default: all pairs)

        Returns:
            Tuple of (motions, outlier view pairs)
        """
        if pairs is None:
            pairs = list(combinations(sorted(poses), 2))

        candidates = []
        for view_a, view_b in pairs:
            matches = [
                (views[view_a], views[view_b])
                for views in point_features.values()
                if view_a in views and view_b in views
            ]
            if len(matches) >= min_matches:
                candidates.append((view_a, view_b, sorted(matches)))

        n_outliers = int(round(outlier_fraction * len(candidates)))
        outlier_indices = set(np.random.choice(len(candidates), n_outliers, replace=False).tolist()) if n_outliers else set()

        motions = []
        outlier_pairs = []
        for index, (view_a, view_b, matches) in enumerate(candidates):
            R_ab, direction = relative_motion(*poses[view_a], *poses[view_b])
            inlier_count = len(matches)

            if index in outlier_indices:
                R_ab = _corrupt_rotation(R_ab)
                direction = _corrupt_direction(direction)
                inlier_count = max(1, inlier_count // 4)
                outlier_pairs.append((view_a, view_b))
            else:
                R_ab = _perturb_rotation(R_ab, rotation_noise_deg)
                direction = _perturb_rotation(np.eye(3), direction_noise_deg) @ direction

            motions.append(RelativeMotion(
                view_a=view_a,
                view_b=view_b,
                rotation=R_ab.tolist(),
                translation_direction=direction.tolist(),
                inlier_count=inlier_count,
                feature_matches=matches,
            ))

        return motions, outlier_pairs

    def create_scene(
        self,
        poses: Dict[int, Pose],
        intrinsic: Intrinsic,
        features: Dict[int, List[List[float]]]
    ) -> SceneDescription:
        """Scene description with un-posed views sharing one intrinsic."""
        views = [
            View(id=view_id, image_path=f"synthetic_{view_id:03d}.png", intrinsic_id=intrinsic.id)
            for view_id in sorted(poses)
        ]
        return SceneDescription(views=views, intrinsics=[intrinsic], features=features)


def make_circle_scene(
    n_views: int = 6,
    n_points: int = 50,
    pixel_noise: float = 0.5,
    rotation_noise_deg: float = 0.0,
    direction_noise_deg: float = 0.0,
    outlier_fraction: float = 0.0,
    distortion: Optional[List[float]] = None,
    radius: float = 5.0,
    seed: Optional[int] = 0
) -> SyntheticScene:
    """Create cameras on a circle around a cube of random points.

    Args:
        n_views: Number of views
        n_points: Number of world points
        pixel_noise: Standard deviation of feature noise in pixels
        rotation_noise_deg: Standard deviation of relative rotation noise
        direction_noise_deg: Standard deviation of relative direction noise
        outlier_fraction: Fraction of relative motions replaced by random ones
        distortion: Radial distortion [k1, k2, k3] of the shared intrinsic
        radius: Camera circle radius
        seed: Random seed

    Returns:
        SyntheticScene with scene, motions and ground truth
    """
    generator = SceneGenerator(seed=seed)

    intrinsic = Intrinsic(
        id=0,
        width=640,
        height=480,
        focal=500.0,
        cx=320.0,
        cy=240.0,
        distortion=list(distortion) if distortion is not None else [0.0, 0.0, 0.0],
    )

    points = generator.generate_points(n_points)
    poses = generator.generate_cameras_circle(n_views, radius=radius)
    features, point_features = generator.generate_observations(points, poses, intrinsic, pixel_noise)
    motions, outlier_pairs = generator.generate_relative_motions(
        poses,
        point_features,
        rotation_noise_deg=rotation_noise_deg,
        direction_noise_deg=direction_noise_deg,
        outlier_fraction=outlier_fraction,
    )

    visibility = compute_visibility_matrix(
        points, poses, intrinsic.get_intrinsics(), (intrinsic.width, intrinsic.height), intrinsic.get_distortion()
    )

    return SyntheticScene(
        scene=generator.create_scene(poses, intrinsic, features),
        motions=motions,
        rotations={vid: R for vid, (R, _) in poses.items()},
        translations={vid: t for vid, (_, t) in poses.items()},
        points=points,
        point_features=point_features,
        outlier_pairs=outlier_pairs,
        coverage=coverage_summary(visibility),
    )
