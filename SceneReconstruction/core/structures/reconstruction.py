"""
Reconstruction: the scene graph of views, tracks and camera intrinsics groups.

The reconstruction owns every View and Track and keeps two indices in sync
with them: view name -> view id, and intrinsics group -> member views. All
mutation goes through this class so that the following always hold:

- view and track ids are unique and never reused within one instance
- every view belongs to exactly one camera intrinsics group
- a group with no member views does not exist
- a (view, track) pair has at most one observation

The class is not thread safe; it is meant to be assembled by a single caller.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from ...logger import get_logger
from .camera import Camera
from .camera_intrinsics import CameraIntrinsicsStore
from .track import Track
from .types import (
    CameraIntrinsicsGroupId,
    Feature,
    TrackId,
    ViewId,
    INVALID_CAMERA_INTRINSICS_GROUP_ID,
    INVALID_TRACK_ID,
    INVALID_VIEW_ID,
)
from .view import View

logger = get_logger("reconstruction")

# Minimum number of views observing a valid track
MIN_VIEWS_PER_TRACK = 2

# Target median absolute deviation of the points after normalize()
NORMALIZED_SCALE = 100.0


class Reconstruction:
    """Mutable store of views, tracks and shared camera intrinsics"""

    def __init__(self):
        self._views: Dict[ViewId, View] = {}
        self._tracks: Dict[TrackId, Track] = {}
        self._view_id_by_name: Dict[str, ViewId] = {}

        self._intrinsics = CameraIntrinsicsStore()
        self._group_of_view: Dict[ViewId, CameraIntrinsicsGroupId] = {}
        self._views_in_group: Dict[CameraIntrinsicsGroupId, Set[ViewId]] = {}

        self._next_view_id: ViewId = 0
        self._next_track_id: TrackId = 0
        self._next_group_id: CameraIntrinsicsGroupId = 0

    # =========================================================================
    # Views
    # =========================================================================

    def view_id_from_name(self, name: str) -> ViewId:
        return self._view_id_by_name.get(name, INVALID_VIEW_ID)

    def add_view(self, name: str,
                 group_id: Optional[CameraIntrinsicsGroupId] = None) -> ViewId:
        """
        Add a view with a default camera

        Args:
            name: Unique view name
            group_id: Intrinsics group to join; a new group is allocated if None

        Returns:
            The new view id, or INVALID_VIEW_ID if the name is already used
        """
        if name in self._view_id_by_name:
            logger.error(f"Could not add view {name!r}: a view with this name already exists")
            return INVALID_VIEW_ID

        if group_id is None:
            group_id = self._next_group_id
        elif group_id < 0:
            raise ValueError(f"Camera intrinsics group id must be non-negative, got {group_id}")

        view_id = self._next_view_id
        self._insert_view(view_id, name, group_id)
        return view_id

    def _insert_view(self, view_id: ViewId, name: str,
                     group_id: CameraIntrinsicsGroupId) -> View:
        self._intrinsics.add_member(group_id)
        view = View(name, Camera(self._intrinsics, group_id))

        self._views[view_id] = view
        self._view_id_by_name[name] = view_id
        self._group_of_view[view_id] = group_id
        self._views_in_group.setdefault(group_id, set()).add(view_id)

        self._next_view_id = max(self._next_view_id, view_id + 1)
        self._next_group_id = max(self._next_group_id, group_id + 1)
        return view

    def remove_view(self, view_id: ViewId) -> bool:
        """
        Remove a view, its observations and (if it was the last member) its group

        Tracks that drop below two observations are left in place; pruning
        them is up to the caller.
        """
        view = self._views.get(view_id)
        if view is None:
            logger.warning(f"Could not remove view {view_id}: it does not exist")
            return False

        for track_id in view.track_ids():
            track = self._tracks.get(track_id)
            if track is not None:
                track.remove_view(view_id)

        group_id = self._group_of_view.pop(view_id)
        members = self._views_in_group[group_id]
        members.discard(view_id)
        if self._intrinsics.remove_member(group_id):
            del self._views_in_group[group_id]

        del self._view_id_by_name[view.name()]
        del self._views[view_id]
        return True

    def view(self, view_id: ViewId) -> Optional[View]:
        return self._views.get(view_id)

    def mutable_view(self, view_id: ViewId) -> Optional[View]:
        return self._views.get(view_id)

    def num_views(self) -> int:
        return len(self._views)

    def view_ids(self) -> List[ViewId]:
        return list(self._views.keys())

    # =========================================================================
    # Camera intrinsics groups
    # =========================================================================

    def camera_intrinsics_group_id_from_view_id(self, view_id: ViewId) -> CameraIntrinsicsGroupId:
        return self._group_of_view.get(view_id, INVALID_CAMERA_INTRINSICS_GROUP_ID)

    def get_views_in_camera_intrinsic_group(self, group_id: CameraIntrinsicsGroupId) -> Set[ViewId]:
        return set(self._views_in_group.get(group_id, set()))

    def camera_intrinsics_group_ids(self) -> Set[CameraIntrinsicsGroupId]:
        return self._intrinsics.group_ids()

    def num_camera_intrinsic_groups(self) -> int:
        return len(self._intrinsics)

    # =========================================================================
    # Tracks
    # =========================================================================

    def add_track(self, observations: Optional[Sequence[Tuple[ViewId, Feature]]] = None) -> TrackId:
        """
        Add a track

        Args:
            observations: (view id, feature) pairs. When omitted an empty track
                is created and observations are added with add_observation().

        Returns:
            The new track id, or INVALID_TRACK_ID if fewer than two
            observations were given, a view is unknown or observed twice.
        """
        if observations is None:
            track_id = self._next_track_id
            self._next_track_id += 1
            self._tracks[track_id] = Track()
            return track_id

        if len(observations) < MIN_VIEWS_PER_TRACK:
            logger.error(f"Could not add track with {len(observations)} observations; "
                         f"at least {MIN_VIEWS_PER_TRACK} are required")
            return INVALID_TRACK_ID

        seen_views = set()
        for view_id, _ in observations:
            if view_id not in self._views:
                logger.error(f"Could not add track: view {view_id} does not exist")
                return INVALID_TRACK_ID
            if view_id in seen_views:
                logger.error(f"Could not add track: view {view_id} observes it more than once")
                return INVALID_TRACK_ID
            seen_views.add(view_id)

        track_id = self._next_track_id
        self._next_track_id += 1
        track = Track()
        self._tracks[track_id] = track
        for view_id, feature in observations:
            track.add_view(view_id)
            self._views[view_id].add_feature(track_id, feature)
        return track_id

    def add_observation(self, view_id: ViewId, track_id: TrackId, feature: Feature) -> bool:
        """Add the observation of a track in a view (at most one per pair)"""
        view = self._views.get(view_id)
        track = self._tracks.get(track_id)
        if view is None or track is None:
            logger.warning(f"Could not add observation ({view_id}, {track_id}): unknown view or track")
            return False

        if view.get_feature(track_id) is not None or view_id in track.view_ids():
            logger.warning(f"View {view_id} already observes track {track_id}")
            return False

        view.add_feature(track_id, feature)
        track.add_view(view_id)
        return True

    def remove_track(self, track_id: TrackId) -> bool:
        track = self._tracks.get(track_id)
        if track is None:
            logger.warning(f"Could not remove track {track_id}: it does not exist")
            return False

        for view_id in track.view_ids():
            view = self._views.get(view_id)
            if view is not None:
                view.remove_feature(track_id)

        del self._tracks[track_id]
        return True

    def track(self, track_id: TrackId) -> Optional[Track]:
        return self._tracks.get(track_id)

    def mutable_track(self, track_id: TrackId) -> Optional[Track]:
        return self._tracks.get(track_id)

    def num_tracks(self) -> int:
        return len(self._tracks)

    def track_ids(self) -> List[TrackId]:
        return list(self._tracks.keys())

    # =========================================================================
    # Sub-reconstruction
    # =========================================================================

    def get_sub_reconstruction(self, view_ids: Iterable[ViewId],
                               output: Optional['Reconstruction'] = None) -> 'Reconstruction':
        """
        Extract the views in view_ids into a new reconstruction

        Views keep their ids, names, estimated flags, cameras and intrinsics
        group ids; each group receives a copy of its intrinsics, so the subset
        is independent of this reconstruction. Tracks observed by at least one
        of the requested views are kept with only their in-subset observations.

        Args:
            view_ids: Ids of the views to extract (unknown ids are ignored)
            output: Optional reconstruction to fill; must be empty

        Returns:
            The sub-reconstruction
        """
        subset = output if output is not None else Reconstruction()
        if subset.num_views() > 0 or subset.num_tracks() > 0:
            raise ValueError("The output reconstruction of get_sub_reconstruction must be empty")

        requested = set(view_ids)
        copied_groups = set()
        for view_id in sorted(requested):
            view = self._views.get(view_id)
            if view is None:
                logger.warning(f"View {view_id} is not in the reconstruction; skipping it")
                continue

            group_id = self._group_of_view[view_id]
            new_view = subset._insert_view(view_id, view.name(), group_id)
            if group_id not in copied_groups:
                subset._intrinsics.set_params(group_id, self._intrinsics.params(group_id))
                copied_groups.add(group_id)

            camera = view.camera()
            new_camera = new_view.mutable_camera()
            new_camera.set_orientation_from_angle_axis(camera.orientation_as_angle_axis())
            new_camera.set_position(camera.position())
            new_camera.image_width = camera.image_width
            new_camera.image_height = camera.image_height
            new_view.set_estimated(view.is_estimated())
            new_view.set_camera_intrinsics_prior(view.camera_intrinsics_prior())

            for track_id in view.track_ids():
                track = self._tracks[track_id]
                new_track = subset._tracks.get(track_id)
                if new_track is None:
                    new_track = Track()
                    new_track.set_point(track.point())
                    new_track.set_color(track.color())
                    new_track.set_estimated(track.is_estimated())
                    subset._tracks[track_id] = new_track
                new_track.add_view(view_id)
                feature = view.get_feature(track_id)
                new_view.add_feature(track_id, Feature(feature.x, feature.y))

        # Ids allocated later must not collide with ids of the source
        subset._next_view_id = max(subset._next_view_id, self._next_view_id)
        subset._next_track_id = max(subset._next_track_id, self._next_track_id)
        subset._next_group_id = max(subset._next_group_id, self._next_group_id)
        return subset

    # =========================================================================
    # Estimation helpers
    # =========================================================================

    def set_underconstrained_as_unestimated(self) -> Tuple[int, int]:
        """
        Mark views and tracks that cannot be constrained as unestimated

        A track needs two estimated views and a view needs two estimated tracks.
        Marking one can invalidate the other, so both passes repeat until nothing
        changes.

        Returns:
            (number of views, number of tracks) marked unestimated
        """
        total_views, total_tracks = 0, 0
        while True:
            num_views = 0
            for view in self._views.values():
                if not view.is_estimated():
                    continue
                num_estimated = sum(
                    1 for track_id in view.track_ids() if self._tracks[track_id].is_estimated())
                if num_estimated < MIN_VIEWS_PER_TRACK:
                    view.set_estimated(False)
                    num_views += 1

            num_tracks = 0
            for track in self._tracks.values():
                if not track.is_estimated():
                    continue
                num_estimated = sum(
                    1 for view_id in track.view_ids() if self._views[view_id].is_estimated())
                if num_estimated < MIN_VIEWS_PER_TRACK:
                    track.set_estimated(False)
                    num_tracks += 1

            total_views += num_views
            total_tracks += num_tracks
            if num_views == 0 and num_tracks == 0:
                break

        if total_views or total_tracks:
            logger.info(f"{total_views} views and {total_tracks} tracks are underconstrained "
                        f"and were marked unestimated")
        return total_views, total_tracks

    def normalize(self) -> bool:
        """
        Center estimated points at their median and rescale the scene

        After normalization the median absolute deviation of the estimated
        points from the origin is NORMALIZED_SCALE. Camera positions are
        transformed with the same similarity.

        Returns:
            False if there are no estimated tracks
        """
        points = [track.point()[:3] / track.point()[3]
                  for track in self._tracks.values() if track.is_estimated()]
        if not points:
            logger.warning("Cannot normalize a reconstruction without estimated tracks")
            return False

        points = np.array(points)
        median = np.median(points, axis=0)
        deviation = np.median(np.abs(points - median))
        scale = NORMALIZED_SCALE / deviation if deviation > 0 else 1.0

        for track in self._tracks.values():
            if track.is_estimated():
                track.set_point(scale * (track.point()[:3] / track.point()[3] - median))

        for view in self._views.values():
            if view.is_estimated():
                camera = view.mutable_camera()
                camera.set_position(scale * (camera.position() - median))
        return True

    def __repr__(self):
        return (f"Reconstruction(views={self.num_views()}, tracks={self.num_tracks()}, "
                f"intrinsics_groups={self.num_camera_intrinsic_groups()})")
