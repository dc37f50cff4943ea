"""View graph of pairwise relative motions."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import breadth_first_order, connected_components, minimum_spanning_tree

from ..errors import DisconnectedGraphError, InsufficientMotionsError
from ..math.so3 import is_rotation_matrix
from ..models.entities import RelativeMotion

logger = logging.getLogger(__name__)


class ViewGraph:
    """Views as integer nodes and relative motions as edge arrays.

    Node k corresponds to view_ids[k]. Edge e joins nodes edges[e, 0] < edges[e, 1]
    and stores R_ab, the unit direction t_ab (camera b frame) and a weight.
    Rejected edges stay in the arrays with active[e] = False.
    """

    def __init__(
        self,
        view_ids: Sequence[int],
        edges: np.ndarray,
        rotations: np.ndarray,
        directions: np.ndarray,
        weights: np.ndarray,
        motions: Optional[List[RelativeMotion]] = None,
        active: Optional[np.ndarray] = None
    ):
        self.view_ids = list(view_ids)
        self.index = {view_id: k for k, view_id in enumerate(self.view_ids)}
        self.edges = np.asarray(edges, dtype=int).reshape(-1, 2)
        self.rotations = np.asarray(rotations, dtype=float).reshape(-1, 3, 3)
        self.directions = np.asarray(directions, dtype=float).reshape(-1, 3)
        self.weights = np.asarray(weights, dtype=float).reshape(-1)
        self.motions = motions if motions is not None else [None] * len(self.edges)
        self.active = (
            np.ones(len(self.edges), dtype=bool) if active is None else np.asarray(active, dtype=bool).copy()
        )

        if not (len(self.edges) == len(self.rotations) == len(self.directions) == len(self.weights)):
            raise ValueError("Edge arrays must have the same length")

    @property
    def n_views(self) -> int:
        return len(self.view_ids)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    def n_active_edges(self) -> int:
        """Number of non-rejected edges."""
        return int(np.count_nonzero(self.active))

    def active_edge_indices(self) -> np.ndarray:
        """Indices of non-rejected edges."""
        return np.flatnonzero(self.active)

    def edge_views(self, edge: int) -> Tuple[int, int]:
        """View IDs joined by an edge."""
        a, b = self.edges[edge]
        return self.view_ids[a], self.view_ids[b]

    def find_edge(self, view_a: int, view_b: int) -> Optional[int]:
        """Edge index joining two views, or None."""
        a, b = sorted((self.index[view_a], self.index[view_b]))
        hits = np.flatnonzero((self.edges[:, 0] == a) & (self.edges[:, 1] == b))
        return int(hits[0]) if len(hits) else None

    def degree(self, view_id: int) -> int:
        """Number of active edges incident to a view."""
        k = self.index[view_id]
        incident = (self.edges[:, 0] == k) | (self.edges[:, 1] == k)
        return int(np.count_nonzero(incident & self.active))

    def adjacency_matrix(self, edge_mask: Optional[np.ndarray] = None, values: Optional[np.ndarray] = None) -> csr_matrix:
        """Symmetric sparse adjacency over the selected edges."""
        mask = self.active if edge_mask is None else edge_mask
        pairs = self.edges[mask]
        data = np.ones(len(pairs)) if values is None else np.asarray(values)[mask]
        rows = np.concatenate([pairs[:, 0], pairs[:, 1]])
        cols = np.concatenate([pairs[:, 1], pairs[:, 0]])
        return csr_matrix((np.concatenate([data, data]), (rows, cols)), shape=(self.n_views, self.n_views))

    def _component_labels(self, edge_mask: Optional[np.ndarray] = None) -> Tuple[int, np.ndarray]:
        return connected_components(self.adjacency_matrix(edge_mask), directed=False)

    def connected_components(self) -> List[List[int]]:
        """Components of the active graph as view ID lists.

        Ordered by number of views, then number of active edges, both descending.
        """
        n_components, labels = self._component_labels()
        edge_labels = labels[self.edges[self.active, 0]]
        edge_counts = np.bincount(edge_labels, minlength=n_components)

        components = []
        for label in range(n_components):
            members = [self.view_ids[k] for k in np.flatnonzero(labels == label)]
            components.append((len(members), int(edge_counts[label]), members))

        components.sort(key=lambda c: (-c[0], -c[1], min(c[2])))
        return [members for _, _, members in components]

    def largest_component(self) -> List[int]:
        """View IDs of the component with most views (ties: most edges).

        Raises:
            DisconnectedGraphError: Two components tie on both views and edges
        """
        n_components, labels = self._component_labels()
        edge_counts = np.bincount(labels[self.edges[self.active, 0]], minlength=n_components)
        sizes = np.bincount(labels, minlength=n_components)
        keys = sorted(
            ((int(sizes[c]), int(edge_counts[c]), c) for c in range(n_components)),
            reverse=True
        )

        if len(keys) > 1 and keys[0][:2] == keys[1][:2] and keys[0][1] > 0:
            raise DisconnectedGraphError(
                f"View graph has no dominant component: two components with "
                f"{keys[0][0]} views and {keys[0][1]} edges"
            )

        label = keys[0][2]
        members = [self.view_ids[k] for k in np.flatnonzero(labels == label)]
        discarded = sorted(set(self.view_ids) - set(members))
        if discarded:
            logger.warning(
                f"View graph has {n_components} components; keeping {len(members)} views, "
                f"discarding views {discarded}"
            )
        return members

    def is_connected(self) -> bool:
        """Check that all views are in one active component."""
        n_components, _ = self._component_labels()
        return n_components == 1

    def restrict_to(self, view_ids: Iterable[int]) -> "ViewGraph":
        """Subgraph over the given views, keeping edges (and their active flags) among them."""
        keep = sorted(set(view_ids))
        unknown = [vid for vid in keep if vid not in self.index]
        if unknown:
            raise ValueError(f"Views {unknown} are not in the graph")

        old_to_new = {self.index[vid]: k for k, vid in enumerate(keep)}
        mask = np.array(
            [a in old_to_new and b in old_to_new for a, b in self.edges],
            dtype=bool
        ) if self.n_edges else np.zeros(0, dtype=bool)

        new_edges = np.array(
            [[old_to_new[a], old_to_new[b]] for a, b in self.edges[mask]],
            dtype=int
        ).reshape(-1, 2)

        return ViewGraph(
            keep,
            new_edges,
            self.rotations[mask],
            self.directions[mask],
            self.weights[mask],
            motions=[m for m, keep_edge in zip(self.motions, mask) if keep_edge],
            active=self.active[mask],
        )

    def spanning_tree(self, root: Optional[int] = None) -> Tuple[int, np.ndarray, np.ndarray]:
        """Maximum-weight spanning tree of the active graph.

        Args:
            root: Root node index (default: node with the largest weighted degree)

        Returns:
            Tuple of (root, order, predecessors) in node indices; order lists the
            nodes reachable from root in breadth-first order
        """
        weights = self.weights[self.active]
        # Invert weights so the minimum spanning tree keeps the strongest edges
        cost = np.zeros(self.n_edges)
        if len(weights):
            cost[self.active] = weights.max() - weights + 1.0
        tree = minimum_spanning_tree(self.adjacency_matrix(values=cost))

        if root is None:
            strength = np.asarray(self.adjacency_matrix(values=self.weights).sum(axis=1)).ravel()
            root = int(np.argmax(strength))

        order, predecessors = breadth_first_order(tree, root, directed=False, return_predecessors=True)
        return root, order, predecessors

    def deactivate(self, edge: int) -> None:
        """Reject an edge; its evidence record is kept."""
        self.active[edge] = False

    def rejected_edges(self) -> List[Tuple[int, int]]:
        """View pairs of rejected edges."""
        return [self.edge_views(e) for e in np.flatnonzero(~self.active)]

    def would_disconnect(self, edge: int) -> bool:
        """Check whether rejecting an active edge splits its component."""
        if not self.active[edge]:
            return False
        before, _ = self._component_labels()
        mask = self.active.copy()
        mask[edge] = False
        after, _ = self._component_labels(mask)
        return after > before

    def triplets(self) -> List[Tuple[int, int, int]]:
        """Triangles of the active graph as sorted node index triples."""
        neighbors: Dict[int, set] = {k: set() for k in range(self.n_views)}
        for a, b in self.edges[self.active]:
            neighbors[a].add(b)
            neighbors[b].add(a)

        triplets = []
        for a, b in self.edges[self.active]:
            for c in neighbors[a] & neighbors[b]:
                if c > b:
                    triplets.append((int(a), int(b), int(c)))
        return sorted(triplets)

    def triplet_components(self) -> List[List[int]]:
        """View ID sets covered by triangles chained through shared edges.

        Two triangles belong to the same set when they share an active edge.
        Views on no triangle belong to no set. Ordered by number of views,
        descending, then by smallest view ID.
        """
        triplets = self.triplets()
        if not triplets:
            return []

        edge_ids: Dict[Tuple[int, int], int] = {}
        rows, cols = [], []
        for a, b, c in triplets:
            ab, ac, bc = (edge_ids.setdefault(pair, len(edge_ids)) for pair in ((a, b), (a, c), (b, c)))
            rows.extend([ab, ab])
            cols.extend([ac, bc])

        n = len(edge_ids)
        adjacency = csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
        _, labels = connected_components(adjacency, directed=False)

        groups: Dict[int, set] = {}
        for (a, b), k in edge_ids.items():
            groups.setdefault(int(labels[k]), set()).update((a, b))

        components = [sorted(self.view_ids[k] for k in nodes) for nodes in groups.values()]
        components.sort(key=lambda views: (-len(views), views[0]))
        return components

    def summary(self) -> Dict[str, int]:
        """Get summary information about the view graph."""
        return {
            "views": self.n_views,
            "edges": self.n_edges,
            "active_edges": self.n_active_edges(),
            "rejected_edges": self.n_edges - self.n_active_edges(),
            "components": len(self.connected_components()),
            "triplets": len(self.triplets()),
        }


def _usable(motion: RelativeMotion) -> bool:
    R = motion.get_rotation()
    direction = motion.get_direction()
    return (
        motion.view_a != motion.view_b
        and motion.inlier_count > 0
        and is_rotation_matrix(R, atol=1e-4)
        and np.all(np.isfinite(direction))
        and np.linalg.norm(direction) > 1e-12
    )


def canonical_motion(motion: RelativeMotion) -> Tuple[int, int, np.ndarray, np.ndarray]:
    """Express a motion with the smaller view ID first.

    The inverse of (R_ab, t_ab) is (R_ab^T, -R_ab^T t_ab).
    """
    R = motion.get_rotation()
    direction = motion.get_direction()
    direction = direction / np.linalg.norm(direction)
    if motion.view_a < motion.view_b:
        return motion.view_a, motion.view_b, R, direction
    return motion.view_b, motion.view_a, R.T, -R.T @ direction


def build_view_graph(view_ids: Iterable[int], motions: Iterable[RelativeMotion]) -> ViewGraph:
    """Build the view graph from pairwise relative motions.

    Motions without a usable estimate are skipped. Each unordered pair keeps at
    most one edge: the candidate with the highest inlier count.

    Args:
        view_ids: Views of the scene
        motions: Pairwise relative motion candidates

    Returns:
        ViewGraph over all given views

    Raises:
        InsufficientMotionsError: No usable relative motion
    """
    view_ids = sorted(set(view_ids))
    known = set(view_ids)

    best: Dict[Tuple[int, int], RelativeMotion] = {}
    skipped = 0
    for motion in motions:
        if motion.view_a not in known or motion.view_b not in known or not _usable(motion):
            skipped += 1
            continue
        key = motion.pair()
        if key not in best or motion.inlier_count > best[key].inlier_count:
            best[key] = motion

    if skipped:
        logger.info(f"Skipped {skipped} relative motions without a usable estimate")

    if not best:
        raise InsufficientMotionsError("Insufficient relative motions: no usable edge in the view graph")

    index = {view_id: k for k, view_id in enumerate(view_ids)}
    edges, rotations, directions, weights, kept = [], [], [], [], []
    for key in sorted(best):
        motion = best[key]
        a, b, R, direction = canonical_motion(motion)
        edges.append((index[a], index[b]))
        rotations.append(R)
        directions.append(direction)
        weights.append(float(motion.inlier_count))
        kept.append(motion)

    graph = ViewGraph(view_ids, np.array(edges), np.array(rotations), np.array(directions), np.array(weights), kept)
    logger.info(f"Built view graph with {graph.n_views} views and {graph.n_edges} edges")
    return graph
