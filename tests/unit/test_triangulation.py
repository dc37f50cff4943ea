"""Tests for track triangulation."""

import numpy as np
import pytest

from globalsfm.core.errors import StageOrderError
from globalsfm.core.models.entities import Intrinsic, Observation, SceneDescription, Track, View
from globalsfm.core.models.settings import TriangulationSettings
from globalsfm.core.models.state import ReconstructionState
from globalsfm.core.structure.tracks import build_tracks
from globalsfm.core.structure.triangulation import (
    triangulate_multiview,
    triangulate_tracks,
    triangulation_angle,
)
from globalsfm.core.synthetic import make_circle_scene


def _posed_state(synthetic):
    state = ReconstructionState.from_scene(synthetic.scene)
    state.set_rotations(synthetic.rotations)
    state.set_translations(synthetic.translations)
    return state


def _tracks(synthetic):
    return build_tracks(synthetic.scene.features, synthetic.motions, synthetic.scene.get_view_ids())


@pytest.fixture
def clean_scene():
    """Noise-free six-view circle."""
    return make_circle_scene(n_views=6, n_points=40, pixel_noise=0.0, seed=7)


class TestTriangulateMultiview:
    """Test linear triangulation."""

    def test_two_views(self):
        """Exact normalized observations recover the point."""
        X = np.array([0.3, -0.2, 4.0])
        poses = [(np.eye(3), np.zeros(3)), (np.eye(3), np.array([-1.0, 0.0, 0.0]))]
        points = np.array([(R @ X + t)[:2] / (R @ X + t)[2] for R, t in poses])
        np.testing.assert_allclose(triangulate_multiview(poses, points), X, atol=1e-10)

    def test_needs_two_views(self):
        """A single observation cannot be triangulated."""
        with pytest.raises(ValueError):
            triangulate_multiview([(np.eye(3), np.zeros(3))], np.zeros((1, 2)))

    def test_angle(self):
        """Triangulation angle is the largest angle between rays."""
        centers = np.array([[-1.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        assert triangulation_angle(centers, np.array([0.0, 0.0, 1.0])) == pytest.approx(90.0)


class TestTriangulateTracks:
    """Test validation and pruning of tracks."""

    def test_clean_scene(self, clean_scene):
        """Every track is triangulated at its true position."""
        state = _posed_state(clean_scene)
        report = triangulate_tracks(state, _tracks(clean_scene))

        assert report.triangulated == 40
        assert report.n_rejected == 0
        assert len(state.tracks) == 40
        assert state.rmse() < 1e-6

        for track in state.tracks.values():
            distances = np.linalg.norm(clean_scene.points - track.to_numpy(), axis=1)
            assert np.min(distances) < 1e-6

    def test_prunes_bad_observation(self, clean_scene):
        """A displaced observation is pruned and the track retriangulated."""
        state = _posed_state(clean_scene)
        tracks = _tracks(clean_scene)
        tracks[0].observations[0].x += 8.0

        report = triangulate_tracks(state, tracks)

        assert report.pruned_observations == 1
        assert 0 in state.tracks
        assert len(state.tracks[0].observations) == len(tracks[0].observations) - 1
        assert np.max(state.observation_errors(state.tracks[0])) < 1e-6

    def test_single_posed_view(self, clean_scene):
        """Tracks with one posed view are rejected."""
        state = _posed_state(clean_scene)
        state.set_rotations({0: clean_scene.rotations[0]})
        state.set_translations({0: clean_scene.translations[0]})

        report = triangulate_tracks(state, _tracks(clean_scene))

        assert report.triangulated == 0
        assert report.rejected == {"too_few_observations": 40}
        assert state.tracks == {}

    def test_angle_threshold(self, clean_scene):
        """Tracks below the angle threshold are rejected."""
        state = _posed_state(clean_scene)
        state.set_rotations({vid: clean_scene.rotations[vid] for vid in (0, 1)})
        state.set_translations({vid: clean_scene.translations[vid] for vid in (0, 1)})
        settings = TriangulationSettings(min_triangulation_angle_deg=120.0)
        report = triangulate_tracks(state, _tracks(clean_scene), settings)
        assert report.rejected == {"angle": 40}
        assert report.summary()["rejected_angle"] == 40

    def test_short_baseline_rejected_by_default(self):
        """Two rays 1 cm apart on a point 5 m away are rejected at the default angle."""
        scene = SceneDescription(
            views=[View(id=0, intrinsic_id=0), View(id=1, intrinsic_id=0)],
            intrinsics=[Intrinsic(id=0, width=640, height=480, focal=500.0, cx=320.0, cy=240.0)],
        )
        state = ReconstructionState.from_scene(scene)
        state.set_rotations({0: np.eye(3), 1: np.eye(3)})
        state.set_translations({0: np.zeros(3), 1: np.array([-0.01, 0.0, 0.0])})

        X = np.array([0.1, 0.05, 5.0])
        observations = []
        for view_id in (0, 1):
            x, y = state.project(view_id, X)[0]
            observations.append(Observation(view_id=view_id, feature_id=0, x=float(x), y=float(y)))

        report = triangulate_tracks(state, {0: Track(id=0, observations=observations)})

        assert report.triangulated == 0
        assert report.rejected == {"angle": 1}
        assert report.summary()["rejected_angle"] == 1
        assert state.tracks == {}

    def test_thread_pool_matches_serial(self, clean_scene):
        """Parallel triangulation gives the same tracks."""
        serial = _posed_state(clean_scene)
        parallel = _posed_state(clean_scene)
        triangulate_tracks(serial, _tracks(clean_scene))
        triangulate_tracks(parallel, _tracks(clean_scene), TriangulationSettings(max_workers=4))

        assert sorted(serial.tracks) == sorted(parallel.tracks)
        for track_id, track in serial.tracks.items():
            np.testing.assert_allclose(track.to_numpy(), parallel.tracks[track_id].to_numpy())

    def test_requires_poses(self, clean_scene):
        """Triangulation before pose resolution is a stage order error."""
        state = ReconstructionState.from_scene(clean_scene.scene)
        with pytest.raises(StageOrderError):
            triangulate_tracks(state, _tracks(clean_scene))
