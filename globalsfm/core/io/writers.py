"""Writers for reconstruction outputs."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from ..models.results import RunResult
from ..models.state import ReconstructionState

logger = logging.getLogger(__name__)

DEFAULT_POINT_COLOR = (255, 255, 255)
CAMERA_COLOR = (0, 255, 0)


def write_ply(
    path: Union[str, Path],
    state: ReconstructionState,
    include_cameras: bool = True,
    colored: bool = True
) -> int:
    """Write triangulated tracks (and camera centers) as an ASCII PLY point cloud.

    Tracks without a color are written white; camera centers are green.

    Returns:
        Number of vertices written
    """
    path = Path(path)
    vertices = []
    for _, track in sorted(state.tracks.items()):
        X = track.to_numpy()
        if X is None:
            continue
        color = tuple(track.color) if colored and track.color is not None else DEFAULT_POINT_COLOR
        vertices.append((X, color))

    if include_cameras:
        for view_id in state.posed_view_ids():
            vertices.append((state.camera_center(view_id), CAMERA_COLOR))

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\n")
        f.write("property float y\n")
        f.write("property float z\n")
        f.write("property uchar red\n")
        f.write("property uchar green\n")
        f.write("property uchar blue\n")
        f.write("end_header\n")
        for (x, y, z), (r, g, b) in vertices:
            f.write(f"{x:.6f} {y:.6f} {z:.6f} {int(r)} {int(g)} {int(b)}\n")

    logger.info(f"Wrote {len(vertices)} vertices to {path}")
    return len(vertices)


def write_scene(
    path: Union[str, Path],
    state: ReconstructionState,
    features: Optional[Dict[int, List[List[float]]]] = None
) -> None:
    """Write posed views, intrinsics and tracks as a JSON scene description."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    scene = state.to_scene(features)
    path.write_text(scene.model_dump_json(indent=2), encoding="utf-8")
    logger.info(f"Wrote scene with {len(scene.views)} views and {len(scene.tracks)} tracks to {path}")


def write_run_report(path: Union[str, Path], result: RunResult) -> None:
    """Write the run outcome and per-stage reports as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.model_dump(), indent=2, default=_to_builtin), encoding="utf-8")


def _to_builtin(value):
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
