"""Optimization and factor graph modules."""

from .factor_graph import FactorGraph, Variable, VariableType, Factor
from .residuals import ResidualFunctor, ReprojectionResidual
from .problem import BundleAdjustmentProblem, RefineMask

__all__ = [
    "FactorGraph",
    "Variable",
    "VariableType",
    "Factor",
    "ResidualFunctor",
    "ReprojectionResidual",
    "BundleAdjustmentProblem",
    "RefineMask",
]
