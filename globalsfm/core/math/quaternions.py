"""Unit quaternions [w, x, y, z] as an intermediate for rotation matrices."""

import numpy as np


def quat_normalize(q: np.ndarray) -> np.ndarray:
    """Unit quaternion with a non-negative scalar part (q and -q are the same rotation)."""
    q = np.asarray(q, dtype=float)
    if q.shape != (4,):
        raise ValueError(f"Quaternion must be 4-element vector, got shape {q.shape}")

    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("Cannot normalize zero quaternion")

    q = q / norm
    return q if q[0] >= 0 else -q


def quat_from_rotation_vector(phi: np.ndarray) -> np.ndarray:
    """Quaternion of the rotation by |phi| radians about phi / |phi|."""
    phi = np.asarray(phi, dtype=float)
    if phi.shape != (3,):
        raise ValueError(f"phi must be 3-element vector, got shape {phi.shape}")

    theta = np.linalg.norm(phi)
    if theta < 1e-12:
        return np.array([1.0, 0.0, 0.0, 0.0])

    return np.concatenate([[np.cos(theta / 2)], np.sin(theta / 2) * phi / theta])


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    """Rotation matrix of a (not necessarily unit) quaternion."""
    w, x, y, z = quat_normalize(q)
    return np.array([
        [1 - 2*(y*y + z*z), 2*(x*y - w*z), 2*(x*z + w*y)],
        [2*(x*y + w*z), 1 - 2*(x*x + z*z), 2*(y*z - w*x)],
        [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x*x + y*y)]
    ])


def random_quaternion() -> np.ndarray:
    """Draw a rotation uniformly from SO(3).

    Uses the global numpy random state so callers can seed it.
    """
    q = np.random.normal(0.0, 1.0, 4)
    while np.linalg.norm(q) < 1e-6:
        q = np.random.normal(0.0, 1.0, 4)
    return quat_normalize(q)
