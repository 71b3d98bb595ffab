"""
Track: a hypothesized 3D point and the set of views observing it.
"""

from typing import Set

import numpy as np

from .types import ViewId


class Track:
    """3D point hypothesis with its observing views"""

    def __init__(self):
        self._point = np.array([0.0, 0.0, 0.0, 1.0])
        self._color = np.zeros(3, dtype=np.uint8)
        self._is_estimated = False
        self._view_ids: Set[ViewId] = set()

    def num_views(self) -> int:
        return len(self._view_ids)

    def view_ids(self) -> Set[ViewId]:
        return self._view_ids

    def add_view(self, view_id: ViewId):
        self._view_ids.add(view_id)

    def remove_view(self, view_id: ViewId) -> bool:
        if view_id not in self._view_ids:
            return False
        self._view_ids.discard(view_id)
        return True

    def point(self) -> np.ndarray:
        """Homogeneous point (4,)"""
        return self._point

    def set_point(self, point: np.ndarray):
        point = np.asarray(point, dtype=np.float64).reshape(-1)
        if point.shape[0] == 3:
            point = np.append(point, 1.0)
        self._point = point.copy()

    def color(self) -> np.ndarray:
        return self._color

    def set_color(self, color):
        self._color = np.asarray(color, dtype=np.uint8).reshape(3).copy()

    def is_estimated(self) -> bool:
        return self._is_estimated

    def set_estimated(self, is_estimated: bool):
        self._is_estimated = is_estimated

    def __repr__(self):
        return f"Track(views={sorted(self._view_ids)}, estimated={self._is_estimated})"
