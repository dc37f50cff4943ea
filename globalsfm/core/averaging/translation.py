"""Translation averaging: camera centers from relative directions and known rotations."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from scipy.sparse import coo_matrix

from .irls import DENSE_COLUMN_LIMIT, irls_solve
from ..errors import DegenerateGeometryError, InsufficientMotionsError
from ..graph.view_graph import ViewGraph
from ..math.robust import get_weight_function
from ..models.settings import TranslationAveragingMethod, TranslationAveragingSettings, parse_translation_method
from ..models.state import ReconstructionState
from ..solver.diagnostics import analyze_jacobian_rank

logger = logging.getLogger(__name__)


@dataclass
class TranslationAveragingResult:
    """Camera centers and world-to-camera translations from translation averaging."""

    translations: Dict[int, np.ndarray]
    centers: Dict[int, np.ndarray]
    method: TranslationAveragingMethod
    iterations: int
    converged: bool
    rank: int
    nullity: int
    excluded_views: List[int] = field(default_factory=list)

    def summary(self) -> Dict[str, float]:
        return {
            "method": self.method.name,
            "views": len(self.translations),
            "excluded_views": len(self.excluded_views),
            "iterations": self.iterations,
            "converged": self.converged,
            "rank": self.rank,
            "nullity": self.nullity,
        }


def world_directions(graph: ViewGraph, rotations: Dict[int, np.ndarray], edges: np.ndarray) -> np.ndarray:
    """Edge directions rotated into the world frame, v_e = R_b^T t_ab (parallel to C_a - C_b)."""
    v = np.empty((len(edges), 3))
    for row, e in enumerate(edges):
        _, view_b = graph.edge_views(e)
        v[row] = rotations[view_b].T @ graph.directions[e]
    return v


def _design_matrix(graph: ViewGraph, edges: np.ndarray, v: np.ndarray, columns: Dict[int, int]) -> coo_matrix:
    """Rows C_a - C_b - s_e v_e, center columns first, then one scale column per edge."""
    n_center_cols = 3 * len(columns)
    rows, cols, data = [], [], []
    for row, e in enumerate(edges):
        a, b = graph.edges[e]
        for k in range(3):
            r = 3 * row + k
            if a in columns:
                rows.append(r)
                cols.append(3 * columns[a] + k)
                data.append(1.0)
            if b in columns:
                rows.append(r)
                cols.append(3 * columns[b] + k)
                data.append(-1.0)
            rows.append(r)
            cols.append(n_center_cols + row)
            data.append(-v[row, k])
    return coo_matrix((data, (rows, cols)), shape=(3 * len(edges), n_center_cols + len(edges)))


def check_collinearity(centers: np.ndarray, tolerance: float) -> float:
    """Ratio of the second to the first principal extent of a set of centers.

    Raises:
        DegenerateGeometryError: Three or more centers lie on a line
    """
    if len(centers) < 3:
        return 1.0
    s = np.linalg.svd(centers - centers.mean(axis=0), compute_uv=False)
    ratio = float(s[1] / s[0]) if s[0] > 0 else 0.0
    if ratio < tolerance:
        raise DegenerateGeometryError(
            f"Camera centers are collinear (extent ratio {ratio:.2e}); translation scale is unconstrained"
        )
    return ratio


def parallel_rigid_views(graph: ViewGraph) -> List[int]:
    """Views whose centers the active edge directions fix up to one global scale.

    These are the views of the largest set of triangles chained through shared
    edges. A component of exactly two views is rigid on its own.

    Raises:
        DegenerateGeometryError: No such set of views exists
    """
    component = graph.largest_component()
    triplet_components = graph.triplet_components()
    if not triplet_components:
        if len(component) == 2:
            return component
        raise DegenerateGeometryError(
            f"Translation problem is not rigid: no triangle of active edges among {len(component)} views"
        )

    rigid = triplet_components[0]
    excluded = sorted(set(component) - set(rigid))
    if excluded:
        logger.warning(
            f"Translation averaging keeps {len(rigid)} views covered by edge triangles; "
            f"excluding views {excluded}"
        )
    return rigid


def average_translations(
    graph: ViewGraph,
    state: ReconstructionState,
    method=TranslationAveragingMethod.L1,
    settings: Optional[TranslationAveragingSettings] = None,
) -> TranslationAveragingResult:
    """Resolve absolute translations for the rigid part of the largest active component.

    Only views returned by parallel_rigid_views are solved; the other views of
    the component are listed in excluded_views and get no translation.
    Unknowns are camera centers, with the first solved view anchored
    at the origin, and one scale s_e >= 1 per active edge, so that
    C_a - C_b = s_e R_b^T t_ab. L2 minimizes the squared residuals with
    bounded least squares; L1 minimizes the unsquared edge residual norms by
    IRLS, each step a bounded weighted least squares.

    Args:
        graph: View graph (only active edges are used)
        state: Reconstruction state holding the averaged rotations
        method: TranslationAveragingMethod.L1 or L2
        settings: Solver settings

    Returns:
        TranslationAveragingResult keyed by view ID

    Raises:
        StageOrderError: A graph view has no rotation
        DegenerateGeometryError: Centers are not determined up to one global scale
    """
    method = parse_translation_method(method)
    settings = settings or TranslationAveragingSettings()

    state.require_rotations(graph.view_ids)
    if graph.n_active_edges() == 0:
        raise InsufficientMotionsError("Translation averaging needs at least one active edge")

    rigid_views = parallel_rigid_views(graph)
    members = sorted(graph.index[vid] for vid in rigid_views)
    member_set = set(members)
    edges = np.array([
        e for e in graph.active_edge_indices()
        if graph.edges[e, 0] in member_set and graph.edges[e, 1] in member_set
    ])

    anchor = members[0]
    columns = {node: col for col, node in enumerate(members[1:])}
    v = world_directions(graph, state.rotations, edges)
    A = _design_matrix(graph, edges, v, columns).tocsr()
    b = np.zeros(A.shape[0])

    rank, nullity = A.shape[1], 0
    if A.shape[1] <= DENSE_COLUMN_LIMIT:
        analysis = analyze_jacobian_rank(A.toarray(), tolerance=settings.rank_tolerance)
        rank, nullity = analysis["rank"], analysis["nullspace_dimension"]
        # Rigid graphs leave only the global scale free unless the centers are degenerate
        if nullity > 1:
            raise DegenerateGeometryError(
                f"Translation problem is rank deficient: rank {rank}, nullity {nullity} "
                f"over {len(members)} views and {len(edges)} edges"
            )
    else:
        logger.debug(f"Skipping dense rank analysis for {A.shape[1]} unknowns")

    n_center_cols = 3 * len(columns)
    lower = np.concatenate([np.full(n_center_cols, -np.inf), np.ones(len(edges))])
    upper = np.full(A.shape[1], np.inf)

    if method == TranslationAveragingMethod.L1:
        weight_fn = get_weight_function("l1", epsilon=settings.l1_epsilon)
        max_iterations = settings.irls_iterations
    else:
        weight_fn = None
        max_iterations = 1

    solution = irls_solve(
        A,
        b,
        weight_fn=weight_fn,
        block_size=3,
        max_iterations=max_iterations,
        tolerance=settings.tolerance,
        bounds=(lower, upper),
    )

    if not np.all(np.isfinite(solution.x)):
        raise DegenerateGeometryError("Translation averaging produced non-finite centers")

    center_values = solution.x[:n_center_cols].reshape(-1, 3)
    centers = {graph.view_ids[anchor]: np.zeros(3)}
    for node, col in columns.items():
        centers[graph.view_ids[node]] = center_values[col]

    check_collinearity(np.array(list(centers.values())), settings.collinearity_tolerance)

    if not solution.converged:
        logger.warning(
            f"Translation averaging ({method.name}) did not converge in {solution.iterations} IRLS iterations"
        )
    else:
        logger.info(
            f"Translation averaging ({method.name}) solved {len(centers)} centers "
            f"in {solution.iterations} iterations"
        )

    translations = {vid: -state.rotations[vid] @ C for vid, C in centers.items()}
    return TranslationAveragingResult(
        translations=translations,
        centers=centers,
        method=method,
        iterations=solution.iterations,
        converged=solution.converged,
        rank=int(rank),
        nullity=int(nullity),
        excluded_views=sorted(set(graph.largest_component()) - set(rigid_views)),
    )


def translation_residuals(
    graph: ViewGraph,
    rotations: Dict[int, np.ndarray],
    centers: Dict[int, np.ndarray]
) -> np.ndarray:
    """Angle (degrees) between each edge's observed and predicted direction.

    Edges with an endpoint lacking a pose get NaN.
    """
    residuals = np.full(graph.n_edges, np.nan)
    valid = np.array([
        e for e in range(graph.n_edges)
        if all(vid in centers and vid in rotations for vid in graph.edge_views(e))
    ], dtype=int)
    if not len(valid):
        return residuals

    observed = world_directions(graph, rotations, valid)
    predicted = np.array([
        centers[graph.edge_views(e)[0]] - centers[graph.edge_views(e)[1]] for e in valid
    ])
    norms = np.linalg.norm(predicted, axis=1)
    cosines = np.einsum("ij,ij->i", observed, predicted) / np.where(norms > 0, norms, 1.0)
    angles = np.degrees(np.arccos(np.clip(cosines, -1.0, 1.0)))
    # Coincident centers give no direction
    residuals[valid] = np.where(norms > 0, angles, 180.0)
    return residuals
