"""globalsfm - Global Structure from Motion

Relative motions averaged into absolute poses (L1/L2 rotation and translation
averaging with graph outlier filtering), followed by track triangulation and
bundle adjustment.
"""

__version__ = "0.1.0"

# Core models
from .core.models.entities import Intrinsic, View, Observation, Track, RelativeMotion, SceneDescription
from .core.models.settings import (
    GlobalSfMSettings,
    RotationAveragingMethod,
    TranslationAveragingMethod,
)
from .core.models.results import RunResult, SolveResult
from .core.models.state import ReconstructionState

# Errors
from .core.errors import (
    GlobalSfMError,
    InputError,
    ConfigurationError,
    StageOrderError,
    DegenerateGeometryError,
    EmptyReconstructionError,
)

# Pipeline
from .core.pipeline.engine import GlobalReconstructionEngine

__all__ = [
    # Version
    "__version__",
    # Models
    "Intrinsic",
    "View",
    "Observation",
    "Track",
    "RelativeMotion",
    "SceneDescription",
    "GlobalSfMSettings",
    "RotationAveragingMethod",
    "TranslationAveragingMethod",
    "RunResult",
    "SolveResult",
    "ReconstructionState",
    # Errors
    "GlobalSfMError",
    "InputError",
    "ConfigurationError",
    "StageOrderError",
    "DegenerateGeometryError",
    "EmptyReconstructionError",
    # Pipeline
    "GlobalReconstructionEngine",
]
