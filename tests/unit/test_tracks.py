"""Tests for track building from feature matches."""

import numpy as np

from globalsfm.core.models.entities import RelativeMotion
from globalsfm.core.structure.tracks import UnionFind, build_tracks


def _motion(a, b, matches):
    return RelativeMotion(
        view_a=a,
        view_b=b,
        rotation=np.eye(3).tolist(),
        translation_direction=[1.0, 0.0, 0.0],
        inlier_count=len(matches),
        feature_matches=matches,
    )


FEATURES = {
    0: [[10.0, 10.0], [20.0, 20.0], [30.0, 30.0]],
    1: [[11.0, 10.0], [21.0, 20.0], [31.0, 30.0]],
    2: [[12.0, 10.0], [22.0, 20.0]],
}


class TestUnionFind:
    """Test disjoint set operations."""

    def test_union_and_groups(self):
        """Unions merge sets; groups are sorted."""
        uf = UnionFind()
        uf.union("a", "b")
        uf.union("c", "d")
        uf.union("b", "d")
        uf.add("e")
        assert uf.groups() == [["a", "b", "c", "d"], ["e"]]
        assert uf.find("a") == uf.find("c")


class TestBuildTracks:
    """Test chaining of pairwise matches."""

    def test_chains_matches(self):
        """Matches 0-1 and 1-2 form one three-view track."""
        tracks = build_tracks(FEATURES, [_motion(0, 1, [(0, 0)]), _motion(1, 2, [(0, 0)])], [0, 1, 2])
        assert len(tracks) == 1
        track = tracks[0]
        assert track.view_ids() == [0, 1, 2]
        assert (track.observations[2].x, track.observations[2].y) == (12.0, 10.0)
        assert not track.is_triangulated()

    def test_conflicting_track_dropped(self):
        """A track reaching two features of one view is dropped."""
        motions = [
            _motion(0, 1, [(0, 0), (1, 1)]),
            _motion(1, 2, [(0, 0), (1, 1)]),
            _motion(0, 2, [(0, 1)]),
        ]
        tracks = build_tracks(FEATURES, motions, [0, 1, 2])
        assert tracks == {}

    def test_disallowed_views_ignored(self):
        """Only the given views contribute observations."""
        motions = [_motion(0, 1, [(0, 0)]), _motion(1, 2, [(0, 0)])]
        tracks = build_tracks(FEATURES, motions, [0, 1])
        assert len(tracks) == 1
        assert tracks[0].view_ids() == [0, 1]

    def test_out_of_range_features_ignored(self):
        """Matches to missing feature indices are skipped."""
        tracks = build_tracks(FEATURES, [_motion(0, 2, [(2, 5)]), _motion(0, 1, [(2, 2)])], [0, 1, 2])
        assert len(tracks) == 1
        assert [obs.feature_id for obs in tracks[0].observations] == [2, 2]

    def test_sequential_ids(self):
        """Track IDs are consecutive from zero."""
        motions = [_motion(0, 1, [(0, 0), (1, 1), (2, 2)])]
        tracks = build_tracks(FEATURES, motions, [0, 1])
        assert sorted(tracks) == [0, 1, 2]
        assert all(track.id == track_id for track_id, track in tracks.items())
