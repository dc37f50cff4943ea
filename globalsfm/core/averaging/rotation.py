"""Rotation averaging: absolute rotations from relative rotations."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.sparse import coo_matrix

from .irls import irls_solve
from ..errors import InsufficientMotionsError
from ..graph.view_graph import ViewGraph
from ..math.robust import get_weight_function
from ..math.so3 import batch_angular_distance, so3_exp, so3_log
from ..models.settings import RotationAveragingMethod, RotationAveragingSettings, parse_rotation_method

logger = logging.getLogger(__name__)


@dataclass
class RotationAveragingResult:
    """Absolute rotations resolved by rotation averaging."""

    rotations: Dict[int, np.ndarray]
    method: RotationAveragingMethod
    iterations: int
    converged: bool
    max_update: float
    root: int

    def summary(self) -> Dict[str, float]:
        return {
            "method": self.method.name,
            "views": len(self.rotations),
            "iterations": self.iterations,
            "converged": self.converged,
            "max_update": self.max_update,
        }


def _strongest_node(graph: ViewGraph, nodes: np.ndarray) -> int:
    strength = np.asarray(graph.adjacency_matrix(values=graph.weights).sum(axis=1)).ravel()
    return int(nodes[np.argmax(strength[nodes])])


def propagate_spanning_tree(graph: ViewGraph, root: Optional[int] = None) -> Tuple[int, Dict[int, np.ndarray]]:
    """Seed rotations by chaining relative rotations along the spanning tree.

    Args:
        graph: View graph
        root: Root node index (default: strongest node of the largest component)

    Returns:
        Tuple of (root node index, rotations keyed by node index)
    """
    if root is None:
        component = [graph.index[vid] for vid in graph.largest_component()]
        root = _strongest_node(graph, np.array(component))

    root, order, predecessors = graph.spanning_tree(root)
    edge_lookup = {(int(a), int(b)): e for e, (a, b) in enumerate(graph.edges) if graph.active[e]}

    rotations = {root: np.eye(3)}
    for node in order[1:]:
        parent = int(predecessors[node])
        node = int(node)
        if (parent, node) in edge_lookup:
            # R_node = R_ab R_parent
            rotations[node] = graph.rotations[edge_lookup[(parent, node)]] @ rotations[parent]
        else:
            rotations[node] = graph.rotations[edge_lookup[(node, parent)]].T @ rotations[parent]

    return root, rotations


def _linearize(graph: ViewGraph, edges: np.ndarray, rotations: Dict[int, np.ndarray]) -> np.ndarray:
    """Per-edge tangent residual log(R_b^T R_ab R_a)."""
    d = np.empty((len(edges), 3))
    for row, e in enumerate(edges):
        a, b = graph.edges[e]
        d[row] = so3_log(rotations[b].T @ graph.rotations[e] @ rotations[a])
    return d


def _design_matrix(graph: ViewGraph, edges: np.ndarray, columns: Dict[int, int]) -> coo_matrix:
    rows, cols, data = [], [], []
    for row, e in enumerate(edges):
        a, b = graph.edges[e]
        for node, sign in ((b, 1.0), (a, -1.0)):
            if node not in columns:
                continue
            for k in range(3):
                rows.append(3 * row + k)
                cols.append(3 * columns[node] + k)
                data.append(sign)
    return coo_matrix((data, (rows, cols)), shape=(3 * len(edges), 3 * len(columns)))


def average_rotations(
    graph: ViewGraph,
    method=RotationAveragingMethod.L2,
    settings: Optional[RotationAveragingSettings] = None,
) -> RotationAveragingResult:
    """Resolve one absolute rotation per view of the largest active component.

    Rotations are seeded along the maximum spanning tree, then refined by
    repeated linearization w_b - w_a = log(R_b^T R_ab R_a) with updates
    R <- R exp(w). L2 solves each linearization by least squares, L1 by IRLS.
    The root view is held fixed (global rotation gauge).

    Args:
        graph: View graph (only active edges are used)
        method: RotationAveragingMethod.L1 or L2
        settings: Solver settings

    Returns:
        RotationAveragingResult keyed by view ID; views without active edges
        in the component are absent

    Raises:
        InsufficientMotionsError: Graph has no active edge
    """
    method = parse_rotation_method(method)
    settings = settings or RotationAveragingSettings()

    if graph.n_active_edges() == 0:
        raise InsufficientMotionsError("Rotation averaging needs at least one active edge")

    root, rotations = propagate_spanning_tree(graph)
    nodes = set(rotations)
    edges = np.array([
        e for e in graph.active_edge_indices()
        if graph.edges[e, 0] in nodes and graph.edges[e, 1] in nodes
    ])

    excluded = sorted(graph.view_ids[k] for k in range(graph.n_views) if k not in nodes)
    if excluded:
        logger.warning(f"Views {excluded} have no active edges to the main component and get no rotation")

    columns = {node: col for col, node in enumerate(sorted(nodes - {root}))}
    A = _design_matrix(graph, edges, columns).tocsr()

    if method == RotationAveragingMethod.L1:
        weight_fn = get_weight_function("l1", epsilon=settings.l1_epsilon)
        inner_iterations = settings.irls_iterations
    else:
        weight_fn = None
        inner_iterations = 1

    converged = False
    max_update = np.inf
    iteration = 0
    for iteration in range(1, settings.max_iterations + 1):
        d = _linearize(graph, edges, rotations)
        solution = irls_solve(
            A,
            d.ravel(),
            weight_fn=weight_fn,
            block_size=3,
            max_iterations=inner_iterations,
            tolerance=settings.tolerance,
        )
        w = solution.x.reshape(-1, 3)

        for node, col in columns.items():
            rotations[node] = rotations[node] @ so3_exp(w[col])

        max_update = float(np.max(np.linalg.norm(w, axis=1))) if len(w) else 0.0
        logger.debug(f"Rotation averaging iteration {iteration}: max update {max_update:.3e} rad")

        if max_update < settings.tolerance:
            converged = True
            break

    if not converged:
        logger.warning(
            f"Rotation averaging ({method.name}) did not converge in {settings.max_iterations} "
            f"iterations (last update {max_update:.3e} rad)"
        )
    else:
        logger.info(f"Rotation averaging ({method.name}) converged in {iteration} iterations")

    return RotationAveragingResult(
        rotations={graph.view_ids[node]: R for node, R in rotations.items()},
        method=method,
        iterations=iteration,
        converged=converged,
        max_update=max_update,
        root=graph.view_ids[root],
    )


def rotation_residuals(graph: ViewGraph, rotations: Dict[int, np.ndarray]) -> np.ndarray:
    """Angle (degrees) between each edge's observed and predicted relative rotation.

    Edges with an endpoint lacking a rotation get NaN.
    """
    residuals = np.full(graph.n_edges, np.nan)
    valid = []
    predicted = []
    for e in range(graph.n_edges):
        view_a, view_b = graph.edge_views(e)
        if view_a in rotations and view_b in rotations:
            valid.append(e)
            predicted.append(rotations[view_b] @ rotations[view_a].T)

    if valid:
        valid = np.array(valid)
        residuals[valid] = batch_angular_distance(graph.rotations[valid], np.array(predicted))
    return residuals
