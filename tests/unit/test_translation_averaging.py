"""Tests for L1/L2 translation averaging."""

import numpy as np
import pytest

from globalsfm.core.averaging.translation import (
    average_translations,
    check_collinearity,
    translation_residuals,
    world_directions,
)
from globalsfm.core.errors import DegenerateGeometryError, StageOrderError
from globalsfm.core.graph.outlier_filter import robust_translation_averaging
from globalsfm.core.graph.view_graph import build_view_graph
from globalsfm.core.math.so3 import relative_motion
from globalsfm.core.models.entities import Intrinsic, RelativeMotion, SceneDescription, View
from globalsfm.core.models.settings import TranslationAveragingMethod
from globalsfm.core.models.state import ReconstructionState
from globalsfm.core.synthetic import align_centers, make_circle_scene


def _setup(synthetic, pairs=None):
    motions = synthetic.motions
    if pairs is not None:
        motions = [m for m in motions if m.pair() in pairs]
    view_ids = sorted({v for m in motions for v in m.pair()})
    graph = build_view_graph(view_ids, motions)
    state = ReconstructionState.from_scene(synthetic.scene)
    state.set_rotations({vid: synthetic.rotations[vid] for vid in view_ids})
    return graph, state


@pytest.fixture
def clean_scene():
    """Noise-free six-view circle."""
    return make_circle_scene(n_views=6, n_points=60, pixel_noise=0.0, seed=1)


def _line_scene(n_views=4):
    """Cameras on a straight line, all looking along +y."""
    R = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [0.0, 1.0, 0.0]])
    poses = {k: (R, -R @ np.array([float(k), -5.0, 0.0])) for k in range(n_views)}
    motions = []
    for a in range(n_views):
        for b in range(a + 1, n_views):
            R_ab, direction = relative_motion(*poses[a], *poses[b])
            motions.append(RelativeMotion(
                view_a=a,
                view_b=b,
                rotation=R_ab.tolist(),
                translation_direction=direction.tolist(),
                inlier_count=100,
            ))
    scene = SceneDescription(
        views=[View(id=k, intrinsic_id=0) for k in range(n_views)],
        intrinsics=[Intrinsic(id=0, width=640, height=480, focal=500.0, cx=320.0, cy=240.0)],
    )
    return scene, motions, poses


class TestAverageTranslations:
    """Test camera center recovery."""

    @pytest.mark.parametrize("method", [TranslationAveragingMethod.L1, TranslationAveragingMethod.L2])
    def test_recovers_clean_centers(self, clean_scene, method):
        """Exact directions give centers equal to the truth up to similarity."""
        graph, state = _setup(clean_scene)
        result = average_translations(graph, state, method)

        _, errors = align_centers(result.centers, clean_scene.centers())
        assert max(errors.values()) < 1e-3
        assert result.nullity <= 1

    def test_translations_match_centers(self, clean_scene):
        """t = -R C for every solved view."""
        graph, state = _setup(clean_scene)
        result = average_translations(graph, state)
        for vid, C in result.centers.items():
            np.testing.assert_allclose(result.translations[vid], -state.rotations[vid] @ C, atol=1e-12)

    def test_scales_at_least_one(self, clean_scene):
        """Baselines are never shorter than one unit."""
        graph, state = _setup(clean_scene)
        result = average_translations(graph, state, TranslationAveragingMethod.L2)
        for e in graph.active_edge_indices():
            view_a, view_b = graph.edge_views(e)
            assert np.linalg.norm(result.centers[view_a] - result.centers[view_b]) >= 1.0 - 1e-6

    @pytest.mark.parametrize("method", [TranslationAveragingMethod.L1, TranslationAveragingMethod.L2])
    def test_noisy_directions(self, method):
        """Small direction noise gives small center errors."""
        synthetic = make_circle_scene(n_views=8, direction_noise_deg=0.5, seed=6)
        graph, state = _setup(synthetic)
        result = average_translations(graph, state, method)
        aligned, errors = align_centers(result.centers, synthetic.centers())
        assert max(errors.values()) < 0.2

    def test_requires_rotations(self, clean_scene):
        """Translation averaging before rotation averaging is a stage order error."""
        graph = build_view_graph(clean_scene.scene.get_view_ids(), clean_scene.motions)
        state = ReconstructionState.from_scene(clean_scene.scene)
        with pytest.raises(StageOrderError):
            average_translations(graph, state)

    def test_chain_is_degenerate(self, clean_scene):
        """A chain of three views leaves the relative baseline lengths free."""
        graph, state = _setup(clean_scene, pairs={(0, 1), (1, 2)})
        with pytest.raises(DegenerateGeometryError):
            average_translations(graph, state)

    def test_two_views(self, clean_scene):
        """A single edge is determined up to the global scale."""
        graph, state = _setup(clean_scene, pairs={(0, 1)})
        result = average_translations(graph, state)
        assert result.nullity == 1
        assert np.linalg.norm(result.centers[0] - result.centers[1]) >= 1.0 - 1e-6

    @pytest.mark.parametrize("seed", range(5))
    def test_noisy_ring_is_degenerate(self, seed):
        """A four-view ring has no rigid shape, even when noise makes its system full rank."""
        synthetic = make_circle_scene(n_views=4, direction_noise_deg=0.5, seed=seed)
        graph, state = _setup(synthetic, pairs={(0, 1), (1, 2), (2, 3), (0, 3)})
        assert graph.n_active_edges() == 4
        with pytest.raises(DegenerateGeometryError):
            average_translations(graph, state)

    @pytest.mark.parametrize("method", [TranslationAveragingMethod.L1, TranslationAveragingMethod.L2])
    def test_leaf_view_is_excluded(self, clean_scene, method):
        """A view hanging on one edge is left out; the others are solved exactly."""
        pairs = {m.pair() for m in clean_scene.motions if 5 not in m.pair()} | {(4, 5)}
        graph, state = _setup(clean_scene, pairs=pairs)
        assert graph.degree(5) == 1

        result = average_translations(graph, state, method)

        assert result.excluded_views == [5]
        assert sorted(result.centers) == [0, 1, 2, 3, 4]
        assert result.summary()["excluded_views"] == 1
        _, errors = align_centers(result.centers, clean_scene.centers())
        assert max(errors.values()) < 1e-3

    def test_largest_triangle_cluster_is_kept(self, clean_scene):
        """Triangles meeting in a single view do not fix each other's scale."""
        graph, state = _setup(clean_scene, pairs={(0, 1), (1, 2), (0, 2), (1, 3), (2, 3), (3, 4), (3, 5), (4, 5)})
        result = average_translations(graph, state)
        assert sorted(result.centers) == [0, 1, 2, 3]
        assert result.excluded_views == [4, 5]

    def test_collinear_centers_are_degenerate(self):
        """Cameras on one line give no relative scale between baselines."""
        scene, motions, poses = _line_scene()
        graph = build_view_graph(scene.get_view_ids(), motions)
        state = ReconstructionState.from_scene(scene)
        state.set_rotations({vid: R for vid, (R, _) in poses.items()})
        with pytest.raises(DegenerateGeometryError):
            average_translations(graph, state)


class TestCollinearity:
    """Test the collinearity check on centers."""

    def test_line(self):
        """Points on a line are rejected."""
        centers = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0]])
        with pytest.raises(DegenerateGeometryError):
            check_collinearity(centers, 1e-3)

    def test_triangle(self):
        """A proper triangle passes."""
        centers = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        assert check_collinearity(centers, 1e-3) > 0.5

    def test_two_centers(self):
        """Two centers always define a line."""
        assert check_collinearity(np.zeros((2, 3)), 1e-3) == 1.0


class TestTranslationResiduals:
    """Test per-edge direction residuals."""

    def test_zero_for_truth(self, clean_scene):
        """Ground-truth poses explain every clean edge."""
        graph, state = _setup(clean_scene)
        residuals = translation_residuals(graph, clean_scene.rotations, clean_scene.centers())
        assert np.all(residuals < 1e-5)

    def test_world_directions_parallel_to_baselines(self, clean_scene):
        """R_b^T t_ab points from C_b to C_a."""
        graph, _ = _setup(clean_scene)
        centers = clean_scene.centers()
        v = world_directions(graph, clean_scene.rotations, graph.active_edge_indices())
        for row, e in enumerate(graph.active_edge_indices()):
            view_a, view_b = graph.edge_views(e)
            baseline = centers[view_a] - centers[view_b]
            np.testing.assert_allclose(v[row], baseline / np.linalg.norm(baseline), atol=1e-9)

    def test_coincident_centers(self, clean_scene):
        """Coincident centers give the maximal residual."""
        graph, _ = _setup(clean_scene)
        centers = {vid: np.zeros(3) for vid in clean_scene.rotations}
        residuals = translation_residuals(graph, clean_scene.rotations, centers)
        np.testing.assert_allclose(residuals, 180.0)


class TestRobustTranslationAveraging:
    """Test translation averaging with the graph outlier filter."""

    def test_rejects_outlier_edge(self):
        """A corrupted direction is removed and the centers stay accurate."""
        synthetic = make_circle_scene(n_views=6, outlier_fraction=0.07, seed=3)
        assert len(synthetic.outlier_pairs) == 1
        graph, state = _setup(synthetic)

        result, report = robust_translation_averaging(graph, state, TranslationAveragingMethod.L1)

        assert synthetic.outlier_pairs[0] in report.removed_edges
        _, errors = align_centers(result.centers, synthetic.centers())
        assert max(errors.values()) < 0.05
