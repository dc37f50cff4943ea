"""Data models for globalsfm."""

from .entities import Intrinsic, View, Observation, Track, RelativeMotion, SceneDescription
from .settings import (
    RotationAveragingMethod,
    TranslationAveragingMethod,
    RotationAveragingSettings,
    TranslationAveragingSettings,
    OutlierFilterSettings,
    TriangulationSettings,
    BundleAdjustmentSettings,
    GlobalSfMSettings,
)
from .results import SolveResult, RunResult
from .state import ReconstructionState

__all__ = [
    "Intrinsic",
    "View",
    "Observation",
    "Track",
    "RelativeMotion",
    "SceneDescription",
    "RotationAveragingMethod",
    "TranslationAveragingMethod",
    "RotationAveragingSettings",
    "TranslationAveragingSettings",
    "OutlierFilterSettings",
    "TriangulationSettings",
    "BundleAdjustmentSettings",
    "GlobalSfMSettings",
    "SolveResult",
    "RunResult",
    "ReconstructionState",
]
