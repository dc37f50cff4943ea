"""Iteratively reweighted least squares shared by rotation and translation averaging."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import lsq_linear
from scipy.sparse import diags, spmatrix
from scipy.sparse.linalg import lsqr

from ..math.robust import WeightFunction

logger = logging.getLogger(__name__)

DENSE_COLUMN_LIMIT = 2000


@dataclass
class IRLSResult:
    """Solution of a (re)weighted linear least squares problem."""

    x: np.ndarray
    iterations: int
    converged: bool
    block_norms: np.ndarray
    weights: np.ndarray


def block_norms(residual: np.ndarray, block_size: int) -> np.ndarray:
    """Euclidean norm of each consecutive block of residual entries."""
    return np.linalg.norm(residual.reshape(-1, block_size), axis=1)


def _weighted_solve(
    A: spmatrix,
    b: np.ndarray,
    row_weights: np.ndarray,
    bounds: Optional[Tuple[np.ndarray, np.ndarray]],
    tolerance: float
) -> np.ndarray:
    sqrt_w = diags(np.sqrt(row_weights))
    A_w = (sqrt_w @ A).tocsr()
    b_w = sqrt_w @ b
    # Dense solve up to the column limit
    dense = A.shape[1] <= DENSE_COLUMN_LIMIT

    if bounds is None:
        if dense:
            return np.linalg.lstsq(A_w.toarray(), b_w, rcond=None)[0]
        return lsqr(A_w, b_w, atol=1e-12, btol=1e-12, iter_lim=20 * A.shape[1])[0]

    if dense:
        result = lsq_linear(A_w.toarray(), b_w, bounds=bounds, method="trf", tol=min(tolerance, 1e-10), lsq_solver="exact")
    else:
        result = lsq_linear(A_w, b_w, bounds=bounds, method="trf", tol=min(tolerance, 1e-10), lsmr_tol="auto")
    return result.x


def irls_solve(
    A: spmatrix,
    b: np.ndarray,
    weight_fn: Optional[WeightFunction] = None,
    block_size: int = 1,
    max_iterations: int = 1,
    tolerance: float = 1e-6,
    bounds: Optional[Tuple[np.ndarray, np.ndarray]] = None
) -> IRLSResult:
    """Minimize sum_e rho(|A_e x - b_e|) by iteratively reweighted least squares.

    Residual rows are grouped in consecutive blocks of block_size (one block
    per graph edge); weight_fn maps block norms to block weights. Without a
    weight function the problem is plain least squares and is solved once.

    Args:
        A: Sparse design matrix
        b: Right-hand side
        weight_fn: Maps per-block residual norms to weights (None for L2)
        block_size: Rows per residual block
        max_iterations: Maximum reweighting iterations
        tolerance: Stop when the largest change of x falls below this value
        bounds: Optional (lower, upper) bounds on x

    Returns:
        IRLSResult with the final solution and weights
    """
    n_blocks = A.shape[0] // block_size
    if n_blocks * block_size != A.shape[0]:
        raise ValueError(f"Row count {A.shape[0]} is not a multiple of block size {block_size}")

    weights = np.ones(n_blocks)
    x = _weighted_solve(A, b, np.repeat(weights, block_size), bounds, tolerance)

    if weight_fn is None:
        norms = block_norms(A @ x - b, block_size)
        return IRLSResult(x=x, iterations=1, converged=True, block_norms=norms, weights=weights)

    converged = False
    iterations = 1
    for iterations in range(2, max_iterations + 1):
        norms = block_norms(A @ x - b, block_size)
        weights = weight_fn(norms)
        x_new = _weighted_solve(A, b, np.repeat(weights, block_size), bounds, tolerance)

        change = np.max(np.abs(x_new - x)) if len(x) else 0.0
        x = x_new
        if change < tolerance:
            converged = True
            break

    norms = block_norms(A @ x - b, block_size)
    logger.debug(f"IRLS finished after {iterations} iterations (converged={converged})")
    return IRLSResult(x=x, iterations=iterations, converged=converged, block_norms=norms, weights=weights)
