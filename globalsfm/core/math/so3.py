"""SO(3) Lie group operations for camera rotations."""

import numpy as np
from typing import Tuple

from .quaternions import quat_from_rotation_vector, quat_to_matrix


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from 3D vector."""
    if v.shape != (3,):
        raise ValueError(f"v must be 3-element vector, got shape {v.shape}")

    return np.array([
        [0, -v[2], v[1]],
        [v[2], 0, -v[0]],
        [-v[1], v[0], 0]
    ])


def so3_exp(phi: np.ndarray) -> np.ndarray:
    """Convert axis-angle vector to rotation matrix.

    Args:
        phi: 3-element rotation vector (axis * angle in radians)

    Returns:
        3x3 rotation matrix
    """
    phi = np.asarray(phi, dtype=float)
    if phi.shape != (3,):
        raise ValueError(f"phi must be 3-element vector, got shape {phi.shape}")

    theta = np.linalg.norm(phi)

    if theta < 1e-8:
        # Small angle approximation, re-orthonormalized
        return project_to_so3(np.eye(3) + skew_symmetric(phi))

    return quat_to_matrix(quat_from_rotation_vector(phi))


def so3_log(R: np.ndarray) -> np.ndarray:
    """Convert rotation matrix to axis-angle vector.

    Args:
        R: 3x3 rotation matrix

    Returns:
        3-element rotation vector with norm in [0, pi]
    """
    if R.shape != (3, 3):
        raise ValueError(f"R must be 3x3 matrix, got shape {R.shape}")

    cos_theta = np.clip((np.trace(R) - 1) / 2, -1.0, 1.0)
    theta = np.arccos(cos_theta)
    vee = np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]])

    if theta < 1e-8:
        return 0.5 * vee

    if np.pi - theta < 1e-4:
        # Near pi the antisymmetric part vanishes; read the axis off R + I
        B = 0.5 * (R + np.eye(3))
        k = int(np.argmax(np.diag(B)))
        axis = B[:, k] / np.sqrt(max(B[k, k], 1e-12))
        axis = axis / np.linalg.norm(axis)
        if np.dot(axis, vee) < 0:
            axis = -axis
        return theta * axis

    return theta / (2 * np.sin(theta)) * vee


def right_jacobian(phi: np.ndarray) -> np.ndarray:
    """Right Jacobian of SO(3) at phi.

    Satisfies exp(phi + d) ~= exp(phi) exp(J_r(phi) d) for small d.
    """
    theta = np.linalg.norm(phi)
    Phi = skew_symmetric(phi)

    if theta < 1e-6:
        return np.eye(3) - 0.5 * Phi + Phi @ Phi / 6.0

    return (
        np.eye(3)
        - (1 - np.cos(theta)) / theta**2 * Phi
        + (theta - np.sin(theta)) / theta**3 * Phi @ Phi
    )


def project_to_so3(M: np.ndarray) -> np.ndarray:
    """Closest rotation matrix to M in the Frobenius sense."""
    U, _, Vt = np.linalg.svd(M)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return R


def is_rotation_matrix(R: np.ndarray, atol: float = 1e-6) -> bool:
    """Check orthonormality and positive determinant."""
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    return bool(np.allclose(R @ R.T, np.eye(3), atol=atol) and abs(np.linalg.det(R) - 1.0) < atol)


def angular_distance(R1: np.ndarray, R2: np.ndarray) -> float:
    """Geodesic distance between two rotations in degrees."""
    cos_theta = np.clip((np.trace(R1.T @ R2) - 1) / 2, -1.0, 1.0)
    return float(np.degrees(np.arccos(cos_theta)))


def batch_angular_distance(R1: np.ndarray, R2: np.ndarray) -> np.ndarray:
    """Geodesic distances in degrees between two stacks of rotations (Nx3x3)."""
    traces = np.einsum("nij,nij->n", R1, R2)
    return np.degrees(np.arccos(np.clip((traces - 1) / 2, -1.0, 1.0)))


def relative_motion(
    R_a: np.ndarray,
    t_a: np.ndarray,
    R_b: np.ndarray,
    t_b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Relative motion from view a to view b for world-to-camera poses.

    Returns:
        Tuple of (R_ab, direction) with R_ab = R_b R_a^T and direction the unit
        vector of t_b - R_ab t_a (expressed in camera b)
    """
    R_ab = R_b @ R_a.T
    t_ab = t_b - R_ab @ t_a
    norm = np.linalg.norm(t_ab)
    if norm < 1e-12:
        raise ValueError("Views share the same camera center; direction is undefined")
    return R_ab, t_ab / norm
