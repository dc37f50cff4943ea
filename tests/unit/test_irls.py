"""Tests for the shared IRLS solver."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from globalsfm.core.averaging.irls import block_norms, irls_solve
from globalsfm.core.math.robust import get_weight_function


class TestIRLS:
    """Test weighted least squares and L1 reweighting."""

    def test_plain_least_squares(self):
        """Without weights the result is the least squares solution."""
        A = csr_matrix(np.array([[1.0], [1.0], [1.0]]))
        b = np.array([1.0, 2.0, 6.0])
        result = irls_solve(A, b)
        assert result.x[0] == pytest.approx(3.0)
        assert result.converged
        assert result.iterations == 1

    def test_l1_is_median(self):
        """L1 reweighting of a constant fit converges to the median."""
        A = csr_matrix(np.ones((5, 1)))
        b = np.array([1.0, 2.0, 3.0, 4.0, 100.0])
        result = irls_solve(A, b, get_weight_function("l1", epsilon=1e-6), max_iterations=200, tolerance=1e-9)
        assert result.x[0] == pytest.approx(3.0, abs=1e-3)

    def test_bounds(self):
        """Bounded solves respect the lower bound."""
        A = csr_matrix(np.array([[1.0], [1.0]]))
        b = np.array([-2.0, -1.0])
        result = irls_solve(A, b, bounds=(np.array([0.5]), np.array([np.inf])))
        assert result.x[0] == pytest.approx(0.5, abs=1e-6)

    def test_block_norms(self):
        """Rows are grouped in consecutive blocks."""
        np.testing.assert_allclose(block_norms(np.array([3.0, 4.0, 0.0, 1.0]), 2), [5.0, 1.0])

    def test_block_size_mismatch(self):
        """Row count must be a multiple of the block size."""
        with pytest.raises(ValueError):
            irls_solve(csr_matrix(np.ones((4, 1))), np.ones(4), block_size=3)
