"""Tests for method selectors and settings."""

import numpy as np
import pytest
from pydantic import ValidationError

from globalsfm.core.errors import ConfigurationError
from globalsfm.core.models.settings import (
    BundleAdjustmentSettings,
    GlobalSfMSettings,
    RotationAveragingMethod,
    TranslationAveragingMethod,
    TriangulationSettings,
    parse_rotation_method,
    parse_translation_method,
)


class TestMethodParsing:
    """Test method selectors."""

    @pytest.mark.parametrize("value", [1, "1", "l1", "L1", RotationAveragingMethod.L1])
    def test_rotation_l1(self, value):
        """L1 is selected by code, name or enum."""
        assert parse_rotation_method(value) is RotationAveragingMethod.L1

    def test_translation_l2(self):
        """L2 translation averaging has code 2."""
        assert parse_translation_method(2) is TranslationAveragingMethod.L2

    @pytest.mark.parametrize("value", [0, 3, "median", None])
    def test_invalid(self, value):
        """Unknown selectors raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            parse_rotation_method(value)
        with pytest.raises(ConfigurationError):
            parse_translation_method(value)

    @pytest.mark.parametrize("value", [1.7, 1.0, True, False, "1.5", [1]])
    def test_non_integral_codes(self, value):
        """Only integer codes and names select a method."""
        with pytest.raises(ConfigurationError):
            parse_rotation_method(value)
        with pytest.raises(ConfigurationError):
            parse_translation_method(value)

    def test_numpy_integer_code(self):
        """Integer scalars from numpy are accepted."""
        assert parse_translation_method(np.int64(2)) is TranslationAveragingMethod.L2

    def test_settings_reject_float_code(self):
        """Settings validation rejects a fractional method code."""
        with pytest.raises(ValidationError):
            GlobalSfMSettings(rotation_method=1.7)


class TestSettings:
    """Test settings defaults and validation."""

    def test_defaults(self):
        """Defaults are L2 rotations, L1 translations and full refinement."""
        settings = GlobalSfMSettings()
        assert settings.rotation_method is RotationAveragingMethod.L2
        assert settings.translation_method is TranslationAveragingMethod.L1
        assert settings.bundle_adjustment.refine_focal_and_principal_point
        assert settings.bundle_adjustment.refine_distortion
        assert settings.triangulation.max_reprojection_error == 4.0

    def test_methods_from_codes(self):
        """Integer codes are accepted."""
        settings = GlobalSfMSettings(rotation_method=1, translation_method=2)
        assert settings.rotation_method is RotationAveragingMethod.L1
        assert settings.translation_method is TranslationAveragingMethod.L2

    def test_invalid_method(self):
        """An invalid selector fails validation."""
        with pytest.raises(ValidationError):
            GlobalSfMSettings(rotation_method=5)

    def test_field_bounds(self):
        """Numeric settings are range-checked."""
        with pytest.raises(ValidationError):
            TriangulationSettings(min_observations=1)
        with pytest.raises(ValidationError):
            BundleAdjustmentSettings(loss="tukey")
