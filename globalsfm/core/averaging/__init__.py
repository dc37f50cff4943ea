"""Motion averaging for globalsfm."""

from .irls import IRLSResult, irls_solve
from .rotation import RotationAveragingResult, average_rotations, rotation_residuals
from .translation import TranslationAveragingResult, average_translations, translation_residuals

__all__ = [
    "IRLSResult",
    "irls_solve",
    "RotationAveragingResult",
    "average_rotations",
    "rotation_residuals",
    "TranslationAveragingResult",
    "average_translations",
    "translation_residuals",
]
