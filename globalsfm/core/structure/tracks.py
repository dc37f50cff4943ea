"""Track building from pairwise feature matches."""

import logging
from typing import Dict, Hashable, Iterable, List, Tuple

from ..models.entities import Observation, RelativeMotion, Track

logger = logging.getLogger(__name__)

FeatureNode = Tuple[int, int]


class UnionFind:
    """Disjoint sets over hashable nodes with path compression and union by size."""

    def __init__(self):
        self.parent: Dict[Hashable, Hashable] = {}
        self.size: Dict[Hashable, int] = {}

    def add(self, node: Hashable) -> None:
        if node not in self.parent:
            self.parent[node] = node
            self.size[node] = 1

    def find(self, node: Hashable) -> Hashable:
        self.add(node)
        root = node
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[node] != root:
            self.parent[node], node = root, self.parent[node]
        return root

    def union(self, a: Hashable, b: Hashable) -> Hashable:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self.size[root_a] < self.size[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        self.size[root_a] += self.size[root_b]
        return root_a

    def groups(self) -> List[List[Hashable]]:
        """Members of each set, sorted, in order of their smallest member."""
        members: Dict[Hashable, List[Hashable]] = {}
        for node in self.parent:
            members.setdefault(self.find(node), []).append(node)
        return sorted((sorted(group) for group in members.values()), key=lambda group: group[0])


def build_tracks(
    features: Dict[int, List[List[float]]],
    motions: Iterable[RelativeMotion],
    view_ids: Iterable[int]
) -> Dict[int, Track]:
    """Chain pairwise feature matches into multi-view tracks.

    Matches touching a view outside view_ids, or a feature index without a
    position, are ignored. A track that reaches two different features of the
    same view is inconsistent and dropped.

    Args:
        features: Per-view feature positions [[x, y], ...]
        motions: Relative motions whose feature_matches are chained
        view_ids: Views allowed to contribute observations

    Returns:
        Tracks keyed by track ID (untriangulated)
    """
    allowed = set(view_ids)
    uf = UnionFind()
    ignored = 0

    def known(view_id: int, feature_id: int) -> bool:
        return view_id in allowed and 0 <= feature_id < len(features.get(view_id, ()))

    for motion in motions:
        for feature_a, feature_b in motion.feature_matches:
            if not (known(motion.view_a, feature_a) and known(motion.view_b, feature_b)):
                ignored += 1
                continue
            uf.union((motion.view_a, feature_a), (motion.view_b, feature_b))

    if ignored:
        logger.info(f"Ignored {ignored} matches outside the reconstructed views or feature lists")

    tracks: Dict[int, Track] = {}
    conflicting = 0
    for group in uf.groups():
        group_views = [view_id for view_id, _ in group]
        if len(set(group_views)) != len(group_views):
            conflicting += 1
            continue

        observations = []
        for view_id, feature_id in group:
            x, y = features[view_id][feature_id][:2]
            observations.append(Observation(view_id=view_id, feature_id=feature_id, x=float(x), y=float(y)))

        track_id = len(tracks)
        tracks[track_id] = Track(id=track_id, observations=observations)

    logger.info(f"Built {len(tracks)} tracks ({conflicting} dropped for conflicting features)")
    return tracks
