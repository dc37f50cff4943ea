"""Scene, matches and reconstruction file formats."""

from .readers import read_matches, read_scene
from .writers import write_ply, write_run_report, write_scene

__all__ = ["read_matches", "read_scene", "write_ply", "write_run_report", "write_scene"]
