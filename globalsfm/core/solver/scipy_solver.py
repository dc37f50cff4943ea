"""SciPy-based nonlinear least squares solver."""

import logging
import numpy as np
import time
from typing import Optional, List
from scipy.optimize import least_squares
from scipy.sparse import csr_matrix
from dataclasses import dataclass

from ..math.jacobians import check_jacobian
from ..optimization.factor_graph import FactorGraph
from ..models.results import SolveResult
from .diagnostics import SolveDiagnostics

logger = logging.getLogger(__name__)

# Jacobians up to this many parameters are passed to scipy dense
DENSE_PARAMETER_LIMIT = 1500


@dataclass
class SolverOptions:
    """Options for the SciPy solver."""

    method: str = "trf"  # "trf", "dogbox"
    max_iterations: int = 100
    tolerance: float = 1e-8
    loss: str = "linear"
    f_scale: float = 1.0
    verbose: int = 0
    use_bounds: bool = True
    jacobian: str = "analytic"  # "analytic", "2-point", "3-point"
    check_jacobian: bool = False


class SciPySolver:
    """SciPy-based nonlinear least squares solver for bundle adjustment."""

    def __init__(self, options: Optional[SolverOptions] = None):
        """Initialize solver.

        Args:
            options: Solver options
        """
        self.options = options or SolverOptions()
        self.diagnostics = SolveDiagnostics()

        self.factor_graph: Optional[FactorGraph] = None
        self.cost_history: List[float] = []
        self.jacobian_error: Optional[float] = None

    def solve(self, factor_graph: FactorGraph) -> SolveResult:
        """Solve the optimization problem in place.

        Solver errors are reported on the result rather than raised; the
        factor graph then holds the initial values.

        Args:
            factor_graph: Factor graph to optimize

        Returns:
            Solve result with diagnostics
        """
        self.factor_graph = factor_graph
        self.cost_history = []

        start_time = time.time()

        x0 = factor_graph.pack_variables()
        initial_cost = 0.5 * float(np.sum(factor_graph.compute_all_residuals()**2))

        if len(x0) == 0:
            return SolveResult(
                success=True,
                iterations=0,
                initial_cost=initial_cost,
                final_cost=initial_cost,
                convergence_reason="No free variables",
                computation_time=time.time() - start_time
            )

        bounds = (-np.inf, np.inf)
        if self.options.use_bounds:
            lower_bounds, upper_bounds = factor_graph.get_variable_bounds()
            if np.any(np.isfinite(lower_bounds)) or np.any(np.isfinite(upper_bounds)):
                bounds = (lower_bounds, upper_bounds)

        if self.options.check_jacobian:
            self._check_jacobian(x0)

        if self.options.jacobian == "analytic":
            jac = self._dense_jacobian if len(x0) <= DENSE_PARAMETER_LIMIT else self._sparse_jacobian
            jac_sparsity = None
        else:
            jac = self.options.jacobian
            jac_sparsity = factor_graph.compute_jacobian_structure()

        try:
            result = least_squares(
                fun=self._residual_function,
                x0=x0,
                jac=jac,
                jac_sparsity=jac_sparsity,
                bounds=bounds,
                method=self.options.method,
                ftol=self.options.tolerance,
                xtol=self.options.tolerance,
                gtol=self.options.tolerance,
                max_nfev=self.options.max_iterations,
                loss=self.options.loss,
                f_scale=self.options.f_scale,
                verbose=self.options.verbose,
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.warning(f"Bundle adjustment solver failed: {e}")
            factor_graph.unpack_variables(x0)
            return SolveResult(
                success=False,
                iterations=len(self.cost_history),
                initial_cost=initial_cost,
                final_cost=initial_cost,
                convergence_reason=f"Solver error: {str(e)}",
                computation_time=time.time() - start_time
            )

        factor_graph.unpack_variables(result.x)
        residuals = factor_graph.compute_all_residuals()
        final_diagnostics = self.diagnostics.compute_diagnostics(factor_graph, residuals)

        return SolveResult(
            success=bool(result.success),
            iterations=int(result.nfev),
            initial_cost=initial_cost,
            final_cost=0.5 * float(np.sum(residuals**2)),
            convergence_reason=self._parse_termination_reason(result),
            largest_residuals=final_diagnostics["largest_residuals"],
            computation_time=time.time() - start_time
        )

    def _residual_function(self, x: np.ndarray) -> np.ndarray:
        """Residual function for scipy.optimize.least_squares."""
        self.factor_graph.unpack_variables(x)
        residuals = self.factor_graph.compute_all_residuals()
        self.cost_history.append(0.5 * float(np.sum(residuals**2)))
        return residuals

    def _sparse_jacobian(self, x: np.ndarray) -> csr_matrix:
        """Analytic Jacobian assembled from factor blocks."""
        self.factor_graph.unpack_variables(x)
        return self.factor_graph.compute_jacobian()

    def _dense_jacobian(self, x: np.ndarray) -> np.ndarray:
        return self._sparse_jacobian(x).toarray()

    def _check_jacobian(self, x0: np.ndarray) -> None:
        """Compare the analytic Jacobian with central differences at x0."""
        matches, max_error, _ = check_jacobian(self._residual_function, self._dense_jacobian, x0)
        self.factor_graph.unpack_variables(x0)
        self.cost_history = []
        self.jacobian_error = max_error

        if matches:
            logger.info(f"Analytic Jacobian matches finite differences (max error {max_error:.2e})")
        else:
            logger.warning(f"Analytic Jacobian differs from finite differences by up to {max_error:.2e}")

    def _parse_termination_reason(self, result) -> str:
        """Parse SciPy termination status into a human-readable string."""
        reasons = {
            -1: "Failed: improper input parameters",
            0: "Stopped: maximum number of function evaluations reached",
            1: "Converged: gradient tolerance satisfied",
            2: "Converged: cost tolerance satisfied",
            3: "Converged: parameter tolerance satisfied",
            4: "Converged: cost and parameter tolerances satisfied",
        }
        return reasons.get(result.status, f"Failed: {result.message}")

    def get_cost_history(self) -> List[float]:
        """Cost at each residual evaluation of the last solve."""
        return self.cost_history.copy()
