"""Scene structure: tracks, triangulation and colors."""

from .tracks import UnionFind, build_tracks
from .triangulation import TriangulationReport, triangulate_multiview, triangulate_tracks, triangulation_angle
from .colorize import colorize_tracks

__all__ = [
    "UnionFind",
    "build_tracks",
    "TriangulationReport",
    "triangulate_multiview",
    "triangulate_tracks",
    "triangulation_angle",
    "colorize_tracks",
]
