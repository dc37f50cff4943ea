"""Global reconstruction pipeline: view graph to bundle-adjusted reconstruction."""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from ..errors import EmptyReconstructionError, GlobalSfMError, StageOrderError
from ..graph.outlier_filter import robust_rotation_averaging, robust_translation_averaging
from ..graph.view_graph import ViewGraph, build_view_graph
from ..models.entities import RelativeMotion, SceneDescription
from ..models.results import RunResult
from ..models.settings import GlobalSfMSettings, parse_rotation_method, parse_translation_method
from ..models.state import ReconstructionState
from ..solver.bundle_adjustment import refine_reconstruction
from ..structure.colorize import ImageLoader, colorize_tracks
from ..structure.tracks import build_tracks
from ..structure.triangulation import triangulate_tracks

logger = logging.getLogger(__name__)


class GlobalReconstructionEngine:
    """Runs the global SfM stages in order over one scene.

    Stages: view graph, largest component, robust rotation averaging, robust
    translation averaging, track building and triangulation, bundle
    adjustment, final validation. Each stage writes its output to the state
    when it finishes.
    """

    def __init__(
        self,
        scene: SceneDescription,
        motions: Iterable[RelativeMotion],
        settings: Optional[GlobalSfMSettings] = None
    ):
        """Initialize engine.

        Args:
            scene: Views, intrinsics and per-view features
            motions: Pairwise relative motions from the matcher
            settings: Pipeline settings (defaults documented on GlobalSfMSettings)
        """
        self.scene = scene
        self.motions: List[RelativeMotion] = list(motions)
        self.settings = settings or GlobalSfMSettings()
        self.state = ReconstructionState.from_scene(scene)
        self.graph: Optional[ViewGraph] = None
        self.result: Optional[RunResult] = None

    def run(
        self,
        rotation_method=None,
        translation_method=None,
        refine_focal_and_pp: Optional[bool] = None,
        refine_distortion: Optional[bool] = None
    ) -> RunResult:
        """Reconstruct the scene.

        Arguments left as None fall back to the engine settings. Errors of any
        stage end the run and are reported on the result.

        Args:
            rotation_method: RotationAveragingMethod, its integer code or name
            translation_method: TranslationAveragingMethod, its integer code or name
            refine_focal_and_pp: Refine focal length and principal point in bundle adjustment
            refine_distortion: Refine radial distortion in bundle adjustment

        Returns:
            RunResult with success flag, counts and per-stage reports
        """
        start_time = time.time()
        self.state = ReconstructionState.from_scene(self.scene)
        self.graph = None
        reports: Dict[str, Dict[str, Any]] = {}

        try:
            result = self._run_stages(
                rotation_method, translation_method, refine_focal_and_pp, refine_distortion, reports
            )
        except GlobalSfMError as e:
            logger.error(f"Reconstruction failed: {e}")
            result = RunResult(
                success=False,
                failure_reason=f"{type(e).__name__}: {e}",
                posed_views=len(self.state.posed_view_ids()),
                stage_reports=reports,
            )

        result.computation_time = time.time() - start_time
        self.result = result
        return result

    def _run_stages(
        self,
        rotation_method,
        translation_method,
        refine_focal_and_pp: Optional[bool],
        refine_distortion: Optional[bool],
        reports: Dict[str, Dict[str, Any]]
    ) -> RunResult:
        settings = self.settings
        rotation_method = parse_rotation_method(
            settings.rotation_method if rotation_method is None else rotation_method
        )
        translation_method = parse_translation_method(
            settings.translation_method if translation_method is None else translation_method
        )
        ba_settings = settings.bundle_adjustment.model_copy(update={
            key: value for key, value in (
                ("refine_focal_and_principal_point", refine_focal_and_pp),
                ("refine_distortion", refine_distortion),
            ) if value is not None
        })
        logger.info(
            f"Running global SfM: rotation {rotation_method.name}, translation {translation_method.name}, "
            f"refine focal/pp={ba_settings.refine_focal_and_principal_point}, "
            f"refine distortion={ba_settings.refine_distortion}"
        )

        graph = build_view_graph(self.scene.get_view_ids(), self.motions)
        reports["view_graph"] = graph.summary()

        graph = graph.restrict_to(graph.largest_component())
        rotation_result, rotation_filter = robust_rotation_averaging(
            graph, rotation_method, settings.rotation, settings.outlier_filter
        )
        self.state.set_rotations(rotation_result.rotations)
        reports["rotation_averaging"] = {
            **rotation_result.summary(),
            "rejected_edges": len(rotation_filter.removed_edges),
        }

        graph = graph.restrict_to(rotation_result.rotations)
        translation_result, translation_filter = robust_translation_averaging(
            graph, self.state, translation_method, settings.translation, settings.outlier_filter
        )
        self.state.set_translations(translation_result.translations)
        reports["translation_averaging"] = {
            **translation_result.summary(),
            "rejected_edges": len(translation_filter.removed_edges),
        }
        self.graph = graph

        active_motions = [graph.motions[e] for e in graph.active_edge_indices()]
        tracks = build_tracks(self.scene.features, active_motions, self.state.posed_view_ids())
        triangulation = triangulate_tracks(self.state, tracks, settings.triangulation)
        reports["triangulation"] = triangulation.summary()
        if not self.state.tracks:
            raise EmptyReconstructionError("No track survived triangulation")

        initial_rmse = self.state.rmse()
        adjustment = refine_reconstruction(self.state, ba_settings)
        reports["bundle_adjustment"] = adjustment.summary()
        if not self.state.tracks:
            raise EmptyReconstructionError("No track survived bundle adjustment")

        self.state.validate_complete()

        posed = self.state.posed_view_ids()
        flagged = list(dict.fromkeys(rotation_filter.flagged_edges + translation_filter.flagged_edges))
        result = RunResult(
            success=True,
            posed_views=len(posed),
            discarded_views=sorted(set(self.scene.get_view_ids()) - set(posed)),
            valid_tracks=len(self.state.tracks),
            rejected_edges=len(graph.rejected_edges()),
            flagged_edges=len(flagged),
            rejected_tracks=triangulation.n_rejected + len(adjustment.removed_tracks),
            initial_rmse=initial_rmse,
            final_rmse=adjustment.final_rmse,
            stage_reports=reports,
        )
        logger.info(
            f"Reconstruction finished: {result.posed_views} views, {result.valid_tracks} tracks, "
            f"RMSE {initial_rmse:.3f} -> {adjustment.final_rmse:.3f} px"
        )
        return result

    def _require_success(self) -> None:
        if self.result is None or not self.result.success:
            raise StageOrderError("The reconstruction has not completed successfully")

    def colorize(self, image_loader: Optional[ImageLoader] = None) -> int:
        """Color the tracks of a successful reconstruction from its images."""
        self._require_success()
        return colorize_tracks(self.state, image_loader)

    def export_scene(self) -> SceneDescription:
        """Scene description of the posed views and valid tracks."""
        self._require_success()
        return self.state.to_scene(self.scene.features)
