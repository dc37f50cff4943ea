"""Camera projection with the radial-3 pinhole model."""

import numpy as np
from typing import Optional


def distortion_factor(r2: np.ndarray, distortion: Optional[np.ndarray]) -> np.ndarray:
    """Radial distortion factor 1 + k1 r^2 + k2 r^4 + k3 r^6."""
    if distortion is None:
        return np.ones_like(r2)
    k1, k2, k3 = distortion
    return 1 + k1 * r2 + k2 * r2**2 + k3 * r2**3


def project(
    intrinsics: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    X: np.ndarray,
    distortion: Optional[np.ndarray] = None
) -> np.ndarray:
    """Project 3D points to image coordinates.

    Args:
        intrinsics: Camera intrinsics [f, cx, cy]
        R: 3x3 rotation matrix (world to camera)
        t: 3-element translation vector (world to camera)
        X: Nx3 array of 3D points in world coordinates
        distortion: Optional radial distortion [k1, k2, k3]

    Returns:
        Nx2 array of projected image coordinates [u, v]; points behind the
        camera project to NaN
    """
    if intrinsics.shape != (3,):
        raise ValueError(f"intrinsics must be [f, cx, cy], got shape {intrinsics.shape}")
    if R.shape != (3, 3):
        raise ValueError(f"R must be 3x3 matrix, got shape {R.shape}")
    if t.shape != (3,):
        raise ValueError(f"t must be 3-element vector, got shape {t.shape}")

    X = np.atleast_2d(X)
    if X.shape[1] != 3:
        raise ValueError(f"X must be Nx3 array, got shape {X.shape}")

    # Transform to camera coordinates
    X_cam = (R @ X.T).T + t

    # Check for points behind camera
    behind_camera = X_cam[:, 2] <= 1e-6
    if np.any(behind_camera):
        X_cam[behind_camera, 2] = np.nan

    # Project to normalized coordinates
    x_norm = X_cam[:, 0] / X_cam[:, 2]
    y_norm = X_cam[:, 1] / X_cam[:, 2]

    d = distortion_factor(x_norm**2 + y_norm**2, distortion)

    f, cx, cy = intrinsics
    u = f * d * x_norm + cx
    v = f * d * y_norm + cy

    return np.column_stack([u, v])


def normalize_points(
    intrinsics: np.ndarray,
    uv: np.ndarray,
    distortion: Optional[np.ndarray] = None,
    iterations: int = 20
) -> np.ndarray:
    """Map pixel coordinates to undistorted normalized image coordinates.

    Radial distortion is inverted by fixed-point iteration.

    Args:
        intrinsics: Camera intrinsics [f, cx, cy]
        uv: Nx2 array of pixel coordinates
        distortion: Optional radial distortion [k1, k2, k3]
        iterations: Fixed-point iterations for undistortion

    Returns:
        Nx2 array of normalized coordinates
    """
    uv = np.atleast_2d(uv)
    if uv.shape[1] != 2:
        raise ValueError(f"uv must be Nx2 array, got shape {uv.shape}")

    f, cx, cy = intrinsics
    xd = np.column_stack([(uv[:, 0] - cx) / f, (uv[:, 1] - cy) / f])

    if distortion is None or not np.any(distortion):
        return xd

    x = xd.copy()
    for _ in range(iterations):
        d = distortion_factor(np.sum(x**2, axis=1), distortion)
        x = xd / d[:, None]

    return x


def camera_center(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Get camera center in world coordinates.

    Args:
        R: 3x3 rotation matrix (world to camera)
        t: 3-element translation vector (world to camera)

    Returns:
        3-element camera center in world coordinates
    """
    return -R.T @ t


def point_depth(R: np.ndarray, t: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Get depth of 3D points relative to camera.

    Args:
        R: 3x3 rotation matrix (world to camera)
        t: 3-element translation vector (world to camera)
        X: Nx3 array of 3D points in world coordinates

    Returns:
        N-element array of depths (positive = in front of camera)
    """
    X = np.atleast_2d(X)
    X_cam = (R @ X.T).T + t
    return X_cam[:, 2]
