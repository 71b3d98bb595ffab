"""
Track building from pairwise feature correspondences.

Correspondences are merged with union-find: every (view, feature) observation
is a node and each correspondence joins two nodes. Connected components become
tracks. Components that contain two different features of the same view are
inconsistent and dropped, as are components outside the allowed length range.
"""

from typing import Dict, List, Tuple

from ...logger import get_logger
from .reconstruction import Reconstruction
from .types import Feature, ViewId, INVALID_TRACK_ID

logger = get_logger("track_builder")

ObservationKey = Tuple[ViewId, float, float]


class TrackBuilder:
    """Accumulates correspondences and turns them into reconstruction tracks"""

    def __init__(self, min_track_length: int = 2, max_track_length: int = 50):
        if min_track_length < 2:
            raise ValueError(f"min_track_length must be at least 2, got {min_track_length}")
        if max_track_length < min_track_length:
            raise ValueError("max_track_length must not be smaller than min_track_length")

        self.min_track_length = min_track_length
        self.max_track_length = max_track_length
        self._parent: Dict[ObservationKey, ObservationKey] = {}
        self._rank: Dict[ObservationKey, int] = {}

    def _find(self, key: ObservationKey) -> ObservationKey:
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def _add_node(self, key: ObservationKey):
        if key not in self._parent:
            self._parent[key] = key
            self._rank[key] = 0

    def _union(self, a: ObservationKey, b: ObservationKey):
        root_a, root_b = self._find(a), self._find(b)
        if root_a == root_b:
            return
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1

    def add_feature_correspondence(self, view_id1: ViewId, feature1: Feature,
                                   view_id2: ViewId, feature2: Feature):
        if view_id1 == view_id2:
            logger.warning(f"Ignoring correspondence within a single view ({view_id1})")
            return
        key1 = (view_id1, float(feature1.x), float(feature1.y))
        key2 = (view_id2, float(feature2.x), float(feature2.y))
        self._add_node(key1)
        self._add_node(key2)
        self._union(key1, key2)

    def components(self) -> List[List[ObservationKey]]:
        groups: Dict[ObservationKey, List[ObservationKey]] = {}
        for key in self._parent:
            groups.setdefault(self._find(key), []).append(key)
        return list(groups.values())

    def build_tracks(self, reconstruction: Reconstruction) -> int:
        """
        Add all consistent tracks to the reconstruction

        Returns:
            Number of tracks added
        """
        num_added = 0
        num_inconsistent = 0
        num_bad_length = 0
        for component in self.components():
            view_ids = [key[0] for key in component]
            if len(set(view_ids)) != len(view_ids):
                num_inconsistent += 1
                continue
            if not self.min_track_length <= len(component) <= self.max_track_length:
                num_bad_length += 1
                continue

            observations = [(key[0], Feature(key[1], key[2])) for key in sorted(component)]
            if reconstruction.add_track(observations) != INVALID_TRACK_ID:
                num_added += 1

        logger.info(f"Built {num_added} tracks ({num_inconsistent} inconsistent, "
                    f"{num_bad_length} outside the length limits)")
        self._parent.clear()
        self._rank.clear()
        return num_added
