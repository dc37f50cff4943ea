"""Tests for scene, motion and output files."""

import json

import numpy as np
import pytest

from globalsfm.core.errors import InputError
from globalsfm.core.io import read_matches, read_scene, write_ply, write_run_report, write_scene
from globalsfm.core.models.entities import Observation, Track
from globalsfm.core.models.results import RunResult
from globalsfm.core.models.state import ReconstructionState
from globalsfm.core.synthetic import make_circle_scene


@pytest.fixture
def synthetic():
    """Small noise-free scene."""
    return make_circle_scene(n_views=3, n_points=12, pixel_noise=0.0, seed=2)


@pytest.fixture
def posed_state(synthetic):
    """State posed at ground truth with two colored tracks."""
    state = ReconstructionState.from_scene(synthetic.scene)
    state.set_rotations(synthetic.rotations)
    state.set_translations(synthetic.translations)
    for track_id in (0, 1):
        state.tracks[track_id] = Track(
            id=track_id,
            observations=[Observation(view_id=0, feature_id=0, x=0.0, y=0.0),
                          Observation(view_id=1, feature_id=0, x=0.0, y=0.0)],
            xyz=synthetic.points[track_id].tolist(),
            color=[10, 20, 30] if track_id == 0 else None,
        )
    return state


class TestReaders:
    """Test input parsing."""

    def test_read_scene(self, tmp_path, synthetic):
        """A scene written as JSON reads back."""
        path = tmp_path / "scene.json"
        path.write_text(synthetic.scene.model_dump_json())
        scene = read_scene(path)
        assert scene.get_view_ids() == [0, 1, 2]
        np.testing.assert_allclose(
            scene.feature_position(1, 0), synthetic.scene.feature_position(1, 0)
        )

    def test_missing_scene(self, tmp_path):
        """A missing file is an input error."""
        with pytest.raises(InputError):
            read_scene(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        """Malformed JSON is an input error."""
        path = tmp_path / "scene.json"
        path.write_text("{not json")
        with pytest.raises(InputError):
            read_scene(path)

    def test_invalid_scene(self, tmp_path):
        """Schema violations are input errors."""
        path = tmp_path / "scene.json"
        path.write_text(json.dumps({"views": [{"id": 0, "intrinsic_id": 7}], "intrinsics": []}))
        with pytest.raises(InputError):
            read_scene(path)

    def test_read_matches_list(self, tmp_path, synthetic):
        """pairs.json may hold a plain list."""
        (tmp_path / "pairs.json").write_text(json.dumps([m.model_dump() for m in synthetic.motions]))
        motions = read_matches(tmp_path)
        assert [m.pair() for m in motions] == [m.pair() for m in synthetic.motions]

    def test_read_matches_object(self, tmp_path, synthetic):
        """pairs.json may wrap the list in a motions field."""
        (tmp_path / "pairs.json").write_text(json.dumps({"motions": [m.model_dump() for m in synthetic.motions]}))
        assert len(read_matches(tmp_path)) == len(synthetic.motions)

    def test_read_matches_invalid(self, tmp_path):
        """Anything but a motion list is rejected."""
        (tmp_path / "pairs.json").write_text(json.dumps({"pairs": []}))
        with pytest.raises(InputError):
            read_matches(tmp_path)
        (tmp_path / "pairs.json").write_text(json.dumps([{"view_a": 0}]))
        with pytest.raises(InputError):
            read_matches(tmp_path)

    def test_missing_matches(self, tmp_path):
        """A match directory without pairs.json is an input error."""
        with pytest.raises(InputError):
            read_matches(tmp_path)


class TestWriters:
    """Test output files."""

    def test_ply(self, tmp_path, posed_state):
        """Tracks and camera centers become PLY vertices."""
        path = tmp_path / "out" / "cloud.ply"
        n = write_ply(path, posed_state)
        assert n == 2 + 3

        lines = path.read_text().splitlines()
        assert lines[0] == "ply"
        assert "element vertex 5" in lines
        body = lines[lines.index("end_header") + 1:]
        assert len(body) == 5
        assert body[0].endswith("10 20 30")
        assert body[1].endswith("255 255 255")
        assert all(line.endswith("0 255 0") for line in body[2:])

    def test_ply_uncolored(self, tmp_path, posed_state):
        """Without colors every track is white."""
        path = tmp_path / "cloud.ply"
        assert write_ply(path, posed_state, include_cameras=False, colored=False) == 2
        body = path.read_text().splitlines()[-2:]
        assert all(line.endswith("255 255 255") for line in body)

    def test_scene(self, tmp_path, posed_state, synthetic):
        """The exported scene reads back with poses and tracks."""
        path = tmp_path / "SfM_output.json"
        write_scene(path, posed_state, synthetic.scene.features)
        scene = read_scene(path)
        assert all(view.is_posed() for view in scene.views)
        assert len(scene.tracks) == 2
        assert scene.tracks[0].color == [10, 20, 30]

    def test_run_report(self, tmp_path):
        """Run reports are plain JSON, numpy values included."""
        result = RunResult(
            success=True,
            posed_views=3,
            stage_reports={"triangulation": {"accepted": np.int64(5), "converged": np.bool_(True)}},
        )
        path = tmp_path / "run_report.json"
        write_run_report(path, result)
        data = json.loads(path.read_text())
        assert data["success"] is True
        assert data["stage_reports"]["triangulation"] == {"accepted": 5, "converged": True}
