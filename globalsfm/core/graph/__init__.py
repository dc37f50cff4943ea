"""View graph construction for globalsfm."""

from .view_graph import ViewGraph, build_view_graph, canonical_motion

__all__ = [
    "ViewGraph",
    "build_view_graph",
    "canonical_motion",
]
