"""Reconstruction pipeline for globalsfm."""

from .engine import GlobalReconstructionEngine

__all__ = ["GlobalReconstructionEngine"]
