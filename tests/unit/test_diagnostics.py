"""Tests for solver diagnostics."""

import numpy as np

from globalsfm.core.optimization.factor_graph import FactorGraph, Variable, VariableType
from globalsfm.core.optimization.residuals import ReprojectionResidual
from globalsfm.core.solver.diagnostics import (
    SolveDiagnostics,
    analyze_jacobian_rank,
    compute_reprojection_errors,
)


def _graph():
    fg = FactorGraph()
    fg.add_variable(Variable(id="X", type=VariableType.TRACK_POINT, size=3, value=[0.0, 0.0, 0.0]))
    fg.add_variable(Variable(id="phi", type=VariableType.VIEW_ROTATION, size=3, value=[0.0, 0.0, 0.0]))
    fg.add_variable(Variable(id="t", type=VariableType.VIEW_TRANSLATION, size=3, value=[0.0, 0.0, 5.0]))
    fg.add_variable(Variable(id="K", type=VariableType.INTRINSIC, size=3, value=[500.0, 320.0, 240.0]))
    for k, (u, v) in enumerate([(323.0, 244.0), (320.0, 240.0)]):
        fg.add_factor(ReprojectionResidual(f"reprojection_{k}_0", "X", "phi", "t", "K", u, v))
    return fg


class TestRankAnalysis:
    """Test rank and nullspace reporting."""

    def test_full_rank(self):
        """An invertible matrix has no nullspace."""
        info = analyze_jacobian_rank(np.diag([3.0, 2.0, 1.0]))
        assert info["rank"] == 3
        assert info["full_rank"]
        assert info["nullspace_dimension"] == 0
        assert info["condition_number"] == 3.0

    def test_rank_deficient(self):
        """Dependent columns form the nullspace."""
        A = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [0.0, 1.0, 1.0]])
        info = analyze_jacobian_rank(A)
        assert info["rank"] == 2
        assert info["nullspace_dimension"] == 1

    def test_empty(self):
        """An empty matrix has only nullspace."""
        assert analyze_jacobian_rank(np.zeros((0, 4)))["nullspace_dimension"] == 4


class TestResidualDiagnostics:
    """Test per-factor residual reports."""

    def test_reprojection_errors(self):
        """Per-observation errors are pixel norms."""
        fg = _graph()
        stats = compute_reprojection_errors(fg, fg.compute_all_residuals())
        assert stats["n_observations"] == 2
        assert stats["max_error"] == 5.0
        assert stats["mean_error"] == 2.5

    def test_largest_residuals(self):
        """Largest residuals are sorted by norm."""
        fg = _graph()
        diagnostics = SolveDiagnostics(top_k=1).compute_diagnostics(fg, fg.compute_all_residuals())
        assert diagnostics["largest_residuals"] == [("reprojection_0_0", 5.0)]
        assert diagnostics["statistics"]["total_residuals"] == 4

    def test_empty_graph(self):
        """No factors means no observations."""
        assert compute_reprojection_errors(FactorGraph(), np.array([])) == {"n_observations": 0}
