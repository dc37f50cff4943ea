"""Track colors sampled from the source images."""

import logging
from typing import Callable, Dict, Optional

import cv2
import numpy as np

from ..models.state import ReconstructionState

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], Optional[np.ndarray]]


def _sample(image: np.ndarray, x: float, y: float) -> Optional[np.ndarray]:
    col, row = int(round(x)), int(round(y))
    if row < 0 or col < 0 or row >= image.shape[0] or col >= image.shape[1]:
        return None
    pixel = image[row, col]
    if image.ndim == 2:
        return np.repeat(pixel, 3).astype(float)
    # OpenCV loads BGR
    return pixel[:3][::-1].astype(float)


def colorize_tracks(state: ReconstructionState, image_loader: Optional[ImageLoader] = None) -> int:
    """Set each track's color to the per-channel median of its observed pixels.

    Views whose image cannot be loaded are skipped; tracks without any sampled
    pixel keep their color unset.

    Args:
        state: Reconstruction state with valid tracks
        image_loader: Returns a BGR (or grayscale) image for a path (default: cv2.imread)

    Returns:
        Number of colored tracks
    """
    image_loader = image_loader or cv2.imread
    images: Dict[int, Optional[np.ndarray]] = {}

    def image_for(view_id: int) -> Optional[np.ndarray]:
        if view_id not in images:
            path = state.views[view_id].image_path
            image = image_loader(path) if path else None
            if image is None:
                logger.warning(f"Could not load image for view {view_id}: {path!r}")
            images[view_id] = image
        return images[view_id]

    colored = 0
    for track in state.tracks.values():
        samples = []
        for obs in track.observations:
            image = image_for(obs.view_id)
            if image is None:
                continue
            pixel = _sample(image, obs.x, obs.y)
            if pixel is not None:
                samples.append(pixel)
        if samples:
            track.color = [int(round(c)) for c in np.clip(np.median(samples, axis=0), 0, 255)]
            colored += 1

    logger.info(f"Colored {colored} of {len(state.tracks)} tracks")
    return colored
