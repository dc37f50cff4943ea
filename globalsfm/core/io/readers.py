"""Readers for scene descriptions and relative motion files."""

import json
import logging
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from ..errors import InputError
from ..models.entities import RelativeMotion, SceneDescription

logger = logging.getLogger(__name__)

PAIRS_FILENAME = "pairs.json"


def _load_json(path: Path):
    if not path.is_file():
        raise InputError(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in {path}: {e}") from e


def read_scene(path: Union[str, Path]) -> SceneDescription:
    """Load a scene description (views, intrinsics, features) from JSON.

    Raises:
        InputError: Missing file, invalid JSON or invalid scene data
    """
    path = Path(path)
    data = _load_json(path)
    try:
        scene = SceneDescription(**data)
    except (TypeError, ValidationError) as e:
        raise InputError(f"Invalid scene description {path}: {e}") from e

    logger.info(f"Loaded scene with {len(scene.views)} views and {len(scene.intrinsics)} intrinsics from {path}")
    return scene


def read_matches(matches_dir: Union[str, Path]) -> List[RelativeMotion]:
    """Load relative motions from pairs.json in a matches directory.

    The file holds either a list of motions or an object with a "motions" list.

    Raises:
        InputError: Missing file, invalid JSON or invalid motion records
    """
    path = Path(matches_dir) / PAIRS_FILENAME
    data = _load_json(path)
    if isinstance(data, dict):
        data = data.get("motions")
    if not isinstance(data, list):
        raise InputError(f"{path} must contain a list of relative motions")

    try:
        motions = [RelativeMotion(**record) for record in data]
    except (TypeError, ValidationError) as e:
        raise InputError(f"Invalid relative motion in {path}: {e}") from e

    logger.info(f"Loaded {len(motions)} relative motions from {path}")
    return motions
