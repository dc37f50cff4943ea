"""Tests for IRLS weight functions."""

import numpy as np
import pytest

from globalsfm.core.math.robust import get_weight_function, l1_weights, l2_weights


class TestWeights:
    """Test robust weight functions."""

    def test_l2_unit_weights(self):
        """L2 weights are all one."""
        np.testing.assert_allclose(l2_weights(np.array([0.0, 1.0, 10.0])), [1.0, 1.0, 1.0])

    def test_l1_inverse_norm(self):
        """L1 weights are inverse residual norms, clamped at epsilon."""
        weights = l1_weights(np.array([0.0, 0.5, 2.0]), epsilon=0.1)
        np.testing.assert_allclose(weights, [10.0, 2.0, 0.5])

    def test_lookup(self):
        """Weight functions are looked up by name."""
        l1 = get_weight_function("l1", epsilon=1e-3)
        np.testing.assert_allclose(l1(np.array([4.0])), [0.25])
        assert get_weight_function("l2") is l2_weights

    def test_unknown_loss(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError):
            get_weight_function("tukey")
