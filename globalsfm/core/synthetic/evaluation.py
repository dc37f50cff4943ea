"""Comparison of reconstructed poses against ground truth up to the global gauge."""

import numpy as np
from typing import Dict, Tuple

from ..math.so3 import batch_angular_distance, project_to_so3


def align_rotations(
    estimated: Dict[int, np.ndarray],
    truth: Dict[int, np.ndarray]
) -> Tuple[np.ndarray, Dict[int, float]]:
    """Align world-to-camera rotations by one global rotation.

    Estimated rotations equal R_true G^T for an unknown world rotation G;
    G^T is taken as the chordal mean of R_true^T R_est.

    Returns:
        Tuple of (G^T, angular error in degrees per view)
    """
    view_ids = sorted(set(estimated) & set(truth))
    if not view_ids:
        raise ValueError("No common views to align")

    G_T = project_to_so3(sum(truth[vid].T @ estimated[vid] for vid in view_ids))
    errors = batch_angular_distance(
        np.array([truth[vid] @ G_T for vid in view_ids]),
        np.array([estimated[vid] for vid in view_ids])
    )
    return G_T, dict(zip(view_ids, errors.tolist()))


def similarity_transform(source: np.ndarray, target: np.ndarray) -> Tuple[float, np.ndarray, np.ndarray]:
    """Least-squares similarity (s, R, t) with target ~= s R source + t (Umeyama).

    Args:
        source: Nx3 points
        target: Nx3 points

    Returns:
        Tuple of (scale, rotation, translation)
    """
    source = np.asarray(source, dtype=float)
    target = np.asarray(target, dtype=float)
    mu_s, mu_t = source.mean(axis=0), target.mean(axis=0)
    src, tgt = source - mu_s, target - mu_t

    U, S, Vt = np.linalg.svd(tgt.T @ src / len(source))
    D = np.eye(3)
    if np.linalg.det(U) * np.linalg.det(Vt) < 0:
        D[2, 2] = -1

    R = U @ D @ Vt
    variance = np.mean(np.sum(src**2, axis=1))
    scale = float(np.trace(np.diag(S) @ D) / variance) if variance > 0 else 1.0
    t = mu_t - scale * R @ mu_s
    return scale, R, t


def align_centers(
    estimated: Dict[int, np.ndarray],
    truth: Dict[int, np.ndarray]
) -> Tuple[Dict[int, np.ndarray], Dict[int, float]]:
    """Align estimated camera centers to ground truth by a similarity transform.

    Returns:
        Tuple of (aligned centers, position error per view in ground-truth units)
    """
    view_ids = sorted(set(estimated) & set(truth))
    if len(view_ids) < 3:
        raise ValueError("Need at least three common views to align centers")

    source = np.array([estimated[vid] for vid in view_ids])
    target = np.array([truth[vid] for vid in view_ids])
    scale, R, t = similarity_transform(source, target)

    aligned = {vid: scale * R @ estimated[vid] + t for vid in view_ids}
    errors = {vid: float(np.linalg.norm(aligned[vid] - truth[vid])) for vid in view_ids}
    return aligned, errors
