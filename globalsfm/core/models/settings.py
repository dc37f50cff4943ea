"""Reconstruction settings with documented defaults."""

import numbers
from enum import IntEnum
from typing import Literal
from pydantic import BaseModel, Field, field_validator

from ..errors import ConfigurationError


class RotationAveragingMethod(IntEnum):
    """Rotation averaging algorithm (integer codes match the CLI)."""
    L1 = 1
    L2 = 2


class TranslationAveragingMethod(IntEnum):
    """Translation averaging algorithm (integer codes match the CLI)."""
    L1 = 1
    L2 = 2


def _method_code(value):
    """Integer code or upper-case name of a method selector, None if malformed."""
    if isinstance(value, str):
        text = value.strip().upper()
        return int(text) if text.isdigit() else text
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return int(value)
    return None


def parse_rotation_method(value) -> RotationAveragingMethod:
    """Validate a rotation averaging selector given as enum, int or name."""
    code = _method_code(value)
    if isinstance(code, int) and code in list(RotationAveragingMethod):
        return RotationAveragingMethod(code)
    if isinstance(code, str) and code in RotationAveragingMethod.__members__:
        return RotationAveragingMethod[code]
    raise ConfigurationError(
        f"Rotation averaging method is invalid: {value!r} (expected 1 for L1 or 2 for L2)"
    )


def parse_translation_method(value) -> TranslationAveragingMethod:
    """Validate a translation averaging selector given as enum, int or name."""
    code = _method_code(value)
    if isinstance(code, int) and code in list(TranslationAveragingMethod):
        return TranslationAveragingMethod(code)
    if isinstance(code, str) and code in TranslationAveragingMethod.__members__:
        return TranslationAveragingMethod[code]
    raise ConfigurationError(
        f"Translation averaging method is invalid: {value!r} (expected 1 for L1 or 2 for L2)"
    )


class RotationAveragingSettings(BaseModel):
    """Rotation averaging solver settings."""

    max_iterations: int = Field(default=100, gt=0, description="Maximum relinearization iterations")
    tolerance: float = Field(default=1e-6, gt=0, description="Convergence threshold on the largest per-view update (radians)")
    irls_iterations: int = Field(default=30, gt=0, description="Inner IRLS iterations for L1 averaging")
    l1_epsilon: float = Field(default=1e-4, gt=0, description="Residual clamp for L1 weights (radians)")


class TranslationAveragingSettings(BaseModel):
    """Translation averaging solver settings."""

    irls_iterations: int = Field(default=50, gt=0, description="IRLS iterations for L1 averaging")
    tolerance: float = Field(default=1e-6, gt=0, description="Convergence threshold on the largest center update")
    l1_epsilon: float = Field(default=1e-4, gt=0, description="Residual clamp for L1 weights")
    rank_tolerance: float = Field(default=1e-8, gt=0, description="Relative singular value threshold for rank analysis")
    collinearity_tolerance: float = Field(
        default=1e-3,
        gt=0,
        description="Minimum ratio of the second to first principal extent of camera centers"
    )


class OutlierFilterSettings(BaseModel):
    """View graph outlier filter thresholds."""

    max_rotation_residual_deg: float = Field(default=5.0, gt=0, description="Rotation residual above which an edge is rejected")
    max_translation_residual_deg: float = Field(default=10.0, gt=0, description="Direction residual above which an edge is rejected")
    max_iterations: int = Field(default=10, gt=0, description="Maximum filter/re-average rounds per stage")


class TriangulationSettings(BaseModel):
    """Track validity thresholds."""

    min_triangulation_angle_deg: float = Field(default=2.0, ge=0, description="Minimum largest angle between observation rays")
    max_reprojection_error: float = Field(default=4.0, gt=0, description="Maximum reprojection error per observation (pixels)")
    min_observations: int = Field(default=2, ge=2, description="Minimum valid observations per track")
    max_workers: int = Field(default=1, ge=1, description="Worker threads for per-track triangulation")


class BundleAdjustmentSettings(BaseModel):
    """Bundle adjustment solver settings."""

    method: Literal["trf", "dogbox"] = Field(default="trf", description="scipy least_squares method")
    max_iterations: int = Field(default=100, gt=0, description="Maximum function evaluations")
    tolerance: float = Field(default=1e-8, gt=0, description="Cost/parameter convergence tolerance")
    loss: Literal["linear", "huber", "soft_l1", "cauchy"] = Field(default="linear", description="scipy robust loss")
    jacobian: Literal["analytic", "2-point", "3-point"] = Field(
        default="analytic",
        description="Analytic reprojection Jacobian or scipy finite differences over the factor graph sparsity"
    )
    check_jacobian: bool = Field(default=False, description="Compare the analytic Jacobian with finite differences before solving")
    outlier_threshold: float = Field(default=4.0, gt=0, description="Observations above this error are removed between passes (pixels)")
    refine_focal_and_principal_point: bool = Field(default=True, description="Refine focal length and principal point")
    refine_distortion: bool = Field(default=True, description="Refine radial distortion coefficients")


class GlobalSfMSettings(BaseModel):
    """Pipeline-wide settings."""

    rotation_method: RotationAveragingMethod = Field(default=RotationAveragingMethod.L2)
    translation_method: TranslationAveragingMethod = Field(default=TranslationAveragingMethod.L1)
    rotation: RotationAveragingSettings = Field(default_factory=RotationAveragingSettings)
    translation: TranslationAveragingSettings = Field(default_factory=TranslationAveragingSettings)
    outlier_filter: OutlierFilterSettings = Field(default_factory=OutlierFilterSettings)
    triangulation: TriangulationSettings = Field(default_factory=TriangulationSettings)
    bundle_adjustment: BundleAdjustmentSettings = Field(default_factory=BundleAdjustmentSettings)

    @field_validator('rotation_method', mode='before')
    @classmethod
    def validate_rotation_method(cls, v):
        return parse_rotation_method(v)

    @field_validator('translation_method', mode='before')
    @classmethod
    def validate_translation_method(cls, v):
        return parse_translation_method(v)
