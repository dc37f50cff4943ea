"""Synthetic scene generation for testing."""

from .scene_gen import SceneGenerator, SyntheticScene, make_circle_scene
from .visibility import check_visibility, compute_visibility_matrix
from .evaluation import align_centers, align_rotations, similarity_transform

__all__ = [
    "SceneGenerator",
    "SyntheticScene",
    "make_circle_scene",
    "check_visibility",
    "compute_visibility_matrix",
    "align_centers",
    "align_rotations",
    "similarity_transform",
]
