"""Tests for track colorization."""

import numpy as np
import pytest

from globalsfm.core.models.state import ReconstructionState
from globalsfm.core.structure.colorize import colorize_tracks
from globalsfm.core.structure.tracks import build_tracks
from globalsfm.core.structure.triangulation import triangulate_tracks
from globalsfm.core.synthetic import make_circle_scene


@pytest.fixture
def state():
    """Triangulated clean scene."""
    synthetic = make_circle_scene(n_views=4, n_points=20, pixel_noise=0.0, seed=8)
    state = ReconstructionState.from_scene(synthetic.scene)
    state.set_rotations(synthetic.rotations)
    state.set_translations(synthetic.translations)
    triangulate_tracks(state, build_tracks(synthetic.scene.features, synthetic.motions, synthetic.scene.get_view_ids()))
    return state


class TestColorizeTracks:
    """Test color sampling from images."""

    def test_bgr_converted_to_rgb(self, state):
        """OpenCV BGR pixels are stored as RGB."""
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        image[:, :] = (10, 20, 30)
        colored = colorize_tracks(state, lambda path: image)
        assert colored == len(state.tracks)
        assert all(track.color == [30, 20, 10] for track in state.tracks.values())

    def test_grayscale(self, state):
        """Grayscale images give gray colors."""
        image = np.full((480, 640), 77, dtype=np.uint8)
        colorize_tracks(state, lambda path: image)
        assert all(track.color == [77, 77, 77] for track in state.tracks.values())

    def test_median_over_views(self, state):
        """Each channel is the median over the observing views."""
        values = {"synthetic_000.png": 0, "synthetic_001.png": 100, "synthetic_002.png": 100, "synthetic_003.png": 100}
        colorize_tracks(state, lambda path: np.full((480, 640), values[path], dtype=np.uint8))
        for track in state.tracks.values():
            if len(track.observations) == 4:
                assert track.color == [100, 100, 100]

    def test_unloadable_images(self, state):
        """Views whose image fails to load are skipped."""
        calls = []

        def loader(path):
            calls.append(path)
            return None

        assert colorize_tracks(state, loader) == 0
        assert all(track.color is None for track in state.tracks.values())
        assert len(calls) == len(set(calls))
