"""
Shared storage for camera intrinsics groups.

Views never hold intrinsics directly. Each camera refers to a group id and all
reads/writes go through this store, so every view in a group sees the same
parameters while views in different groups stay independent. Groups are
reference counted by member views and are deleted when the count reaches zero.
"""

from typing import Dict, Set

import numpy as np

from .types import CameraIntrinsicsGroupId


# Layout of the intrinsics parameter vector
FOCAL_LENGTH = 0
ASPECT_RATIO = 1
SKEW = 2
PRINCIPAL_POINT_X = 3
PRINCIPAL_POINT_Y = 4
RADIAL_DISTORTION_1 = 5
RADIAL_DISTORTION_2 = 6
NUM_INTRINSIC_PARAMETERS = 7


def default_intrinsics() -> np.ndarray:
    params = np.zeros(NUM_INTRINSIC_PARAMETERS, dtype=np.float64)
    params[FOCAL_LENGTH] = 1.0
    params[ASPECT_RATIO] = 1.0
    return params


class CameraIntrinsicsStore:
    """Dense store of intrinsics vectors keyed by group id with member counts"""

    def __init__(self):
        self._params: Dict[CameraIntrinsicsGroupId, np.ndarray] = {}
        self._member_count: Dict[CameraIntrinsicsGroupId, int] = {}

    def __contains__(self, group_id: CameraIntrinsicsGroupId) -> bool:
        return group_id in self._params

    def __len__(self) -> int:
        return len(self._params)

    def group_ids(self) -> Set[CameraIntrinsicsGroupId]:
        return set(self._params.keys())

    def params(self, group_id: CameraIntrinsicsGroupId) -> np.ndarray:
        """Mutable parameter vector of a group (raises KeyError if unknown)"""
        return self._params[group_id]

    def member_count(self, group_id: CameraIntrinsicsGroupId) -> int:
        return self._member_count.get(group_id, 0)

    def add_member(self, group_id: CameraIntrinsicsGroupId) -> bool:
        """
        Register one more member view, creating the group on first use

        Returns:
            True if the group was created by this call
        """
        created = group_id not in self._params
        if created:
            self._params[group_id] = default_intrinsics()
            self._member_count[group_id] = 0
        self._member_count[group_id] += 1
        return created

    def remove_member(self, group_id: CameraIntrinsicsGroupId) -> bool:
        """
        Drop one member view; the group is deleted when it has none left

        Returns:
            True if the group was deleted by this call
        """
        if group_id not in self._params:
            return False
        self._member_count[group_id] -= 1
        if self._member_count[group_id] > 0:
            return False
        del self._params[group_id]
        del self._member_count[group_id]
        return True

    def set_params(self, group_id: CameraIntrinsicsGroupId, params: np.ndarray):
        """Overwrite a group's parameters in place so existing handles stay valid"""
        self._params[group_id][:] = np.asarray(params, dtype=np.float64)
