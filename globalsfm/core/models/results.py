"""Result models reported by the solver and the pipeline."""

import math
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


def _finite_or(value: float, fallback):
    if value is None or math.isinf(value) or math.isnan(value):
        return fallback
    return value


class SolveResult(BaseModel):
    """Results from a nonlinear least squares solve."""

    success: bool = Field(description="Whether solve succeeded")
    iterations: int = Field(description="Number of function evaluations performed")
    initial_cost: float = Field(default=0.0, description="Cost before optimization")
    final_cost: float = Field(description="Final optimization cost")
    convergence_reason: str = Field(description="Reason for convergence/termination")
    largest_residuals: List[tuple[str, float]] = Field(
        default_factory=list,
        description="Largest residuals by factor ID"
    )
    computation_time: Optional[float] = Field(
        default=None,
        description="Solve time in seconds"
    )

    @field_validator('initial_cost', 'final_cost')
    @classmethod
    def validate_cost(cls, v):
        """Ensure costs are JSON serializable."""
        return _finite_or(v, 1e10)

    @field_validator('computation_time')
    @classmethod
    def validate_computation_time(cls, v):
        """Ensure computation_time is JSON serializable."""
        return _finite_or(v, None)

    @field_validator('largest_residuals')
    @classmethod
    def validate_largest_residuals(cls, v):
        """Ensure largest residuals are JSON serializable."""
        return [(factor_id, _finite_or(residual, 1e10)) for factor_id, residual in v]


class RunResult(BaseModel):
    """Outcome of one reconstruction run."""

    success: bool = Field(description="Whether the pipeline produced a reconstruction")
    failure_reason: Optional[str] = Field(default=None, description="Why the run failed")
    posed_views: int = Field(default=0, description="Views with a resolved pose")
    discarded_views: List[int] = Field(default_factory=list, description="Views outside the reconstructed component")
    valid_tracks: int = Field(default=0, description="Tracks surviving triangulation and refinement")
    rejected_edges: int = Field(default=0, description="Edges deactivated by the outlier filter")
    flagged_edges: int = Field(default=0, description="Edges above threshold kept to preserve connectivity")
    rejected_tracks: int = Field(default=0, description="Tracks rejected during triangulation or refinement")
    initial_rmse: Optional[float] = Field(default=None, description="Reprojection RMSE before bundle adjustment")
    final_rmse: Optional[float] = Field(default=None, description="Reprojection RMSE after bundle adjustment")
    stage_reports: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-stage summaries"
    )
    computation_time: Optional[float] = Field(default=None, description="Run time in seconds")

    @field_validator('initial_rmse', 'final_rmse', 'computation_time')
    @classmethod
    def validate_finite(cls, v):
        """Ensure floats are JSON serializable."""
        return _finite_or(v, None)
