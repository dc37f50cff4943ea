"""Visibility checking utilities for synthetic scene generation."""

import numpy as np
from typing import Dict, List, Optional, Tuple

from ..math.camera import project, point_depth


def check_visibility(
    intrinsics: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    X: np.ndarray,
    image_width: int,
    image_height: int,
    min_depth: float = 0.1,
    max_depth: float = 1000.0,
    border_margin: int = 5,
    distortion: Optional[np.ndarray] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """Check visibility of 3D points in camera.

    Args:
        intrinsics: Camera intrinsics [f, cx, cy]
        R: Rotation matrix (world to camera)
        t: Translation vector (world to camera)
        X: Nx3 array of 3D points
        image_width: Image width in pixels
        image_height: Image height in pixels
        min_depth: Minimum valid depth
        max_depth: Maximum valid depth
        border_margin: Margin from image border in pixels
        distortion: Optional radial distortion [k1, k2, k3]

    Returns:
        Tuple of (visibility_mask, projected_points) where visibility_mask is
        boolean array indicating which points are visible
    """
    X = np.atleast_2d(X)

    uv = project(intrinsics, R, t, X, distortion)

    depths = point_depth(R, t, X)
    depth_valid = (depths >= min_depth) & (depths <= max_depth)

    # NaN projections compare False, so points behind the camera drop out here too
    with np.errstate(invalid="ignore"):
        u_valid = (uv[:, 0] >= border_margin) & (uv[:, 0] < image_width - border_margin)
        v_valid = (uv[:, 1] >= border_margin) & (uv[:, 1] < image_height - border_margin)

    visible = depth_valid & u_valid & v_valid

    return visible, uv


def compute_visibility_matrix(
    points: np.ndarray,
    poses: Dict[int, Tuple[np.ndarray, np.ndarray]],
    intrinsics: np.ndarray,
    image_size: Tuple[int, int],
    distortion: Optional[np.ndarray] = None
) -> np.ndarray:
    """Compute visibility matrix for points and views.

    Args:
        points: Nx3 world points
        poses: World-to-camera (R, t) per view ID
        intrinsics: Shared intrinsics [f, cx, cy]
        image_size: Image dimensions (width, height)
        distortion: Optional radial distortion [k1, k2, k3]

    Returns:
        Boolean matrix of shape (n_points, n_views), views in sorted ID order
    """
    view_ids = sorted(poses)
    visibility = np.zeros((len(points), len(view_ids)), dtype=bool)
    for j, view_id in enumerate(view_ids):
        R, t = poses[view_id]
        visibility[:, j], _ = check_visibility(
            intrinsics, R, t, points, image_size[0], image_size[1], distortion=distortion
        )
    return visibility


def add_projection_noise(uv: np.ndarray, noise_std: float) -> np.ndarray:
    """Add Gaussian noise to projected image coordinates.

    Args:
        uv: Nx2 array of image coordinates
        noise_std: Standard deviation of noise in pixels

    Returns:
        Noisy image coordinates
    """
    if noise_std <= 0:
        return uv.copy()
    return uv + np.random.normal(0, noise_std, uv.shape)


def coverage_summary(visibility: np.ndarray) -> Dict[str, float]:
    """Visibility statistics of a scene."""
    views_per_point = visibility.sum(axis=1)
    points_per_view = visibility.sum(axis=0)
    return {
        "points": int(visibility.shape[0]),
        "views": int(visibility.shape[1]),
        "mean_views_per_point": float(np.mean(views_per_point)) if len(views_per_point) else 0.0,
        "min_points_per_view": int(np.min(points_per_view)) if len(points_per_view) else 0,
        "observations": int(visibility.sum()),
    }
