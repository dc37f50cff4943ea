"""Jacobian computation utilities."""

import numpy as np
from typing import Callable


def finite_difference_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-6,
    method: str = "central"
) -> np.ndarray:
    """Compute Jacobian using finite differences.

    The step for parameter j is h * max(1, |x_j|) so large parameters such as
    focal lengths are perturbed proportionally.

    Args:
        func: Function that takes x and returns residual vector
        x: Input parameters
        h: Relative step size for finite differences
        method: Finite difference method ("forward", "central")

    Returns:
        Jacobian matrix J where J[i,j] = df_i/dx_j
    """
    x = np.atleast_1d(np.asarray(x, dtype=float))
    f0 = np.atleast_1d(func(x))

    m, n = len(f0), len(x)
    J = np.zeros((m, n))
    steps = h * np.maximum(1.0, np.abs(x))

    if method == "forward":
        for j in range(n):
            x_plus = x.copy()
            x_plus[j] += steps[j]
            J[:, j] = (func(x_plus) - f0) / steps[j]

    elif method == "central":
        for j in range(n):
            x_plus = x.copy()
            x_minus = x.copy()
            x_plus[j] += steps[j]
            x_minus[j] -= steps[j]
            J[:, j] = (func(x_plus) - func(x_minus)) / (2 * steps[j])

    else:
        raise ValueError(f"Unknown finite difference method: {method}")

    return J


def check_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    jacobian_func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-6,
    atol: float = 1e-5,
    rtol: float = 1e-4
) -> tuple[bool, float, np.ndarray]:
    """Check analytic Jacobian against finite differences.

    Args:
        func: Function that computes residuals
        jacobian_func: Function that computes analytic Jacobian
        x: Input parameters
        h: Step size for finite differences
        atol: Absolute tolerance
        rtol: Relative tolerance

    Returns:
        Tuple of (is_correct, max_error, error_matrix)
    """
    J_analytic = jacobian_func(x)
    J_numeric = finite_difference_jacobian(func, x, h)

    error = np.abs(J_analytic - J_numeric)
    max_error = float(np.max(error)) if error.size else 0.0

    is_correct = np.allclose(J_analytic, J_numeric, atol=atol, rtol=rtol)

    return is_correct, max_error, error
