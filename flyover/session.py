"""Playback session: owns the loaded track, its photo waypoints and one scheduler."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Sequence

from flyover.loop import FrameLoop
from flyover.models import (
    DEFAULT_PARAMS,
    CameraPose,
    InvalidTrack,
    MarkerState,
    PhotoWaypoint,
    PlaybackParams,
    PlaybackState,
)
from flyover.scheduler import PlaybackScheduler
from flyover.sinks import NullSink, PlaybackSink
from flyover.track import Track

logger = logging.getLogger(__name__)


class PlaybackSession:
    """One session per open track.

    Loading a new track discards the old scheduler (stopping its run) and builds a
    fresh one; waypoints persist across track loads since photos are attached to the
    session, not to a track.
    """

    def __init__(
        self,
        loop: FrameLoop,
        sink: PlaybackSink | None = None,
        params: PlaybackParams = DEFAULT_PARAMS,
    ) -> None:
        params.validate()
        self._loop = loop
        self._sink: PlaybackSink = sink if sink is not None else NullSink()
        self._params = params
        self._track: Track | None = None
        self._waypoints: list[PhotoWaypoint] = []
        self._scheduler = PlaybackScheduler(loop, self._sink, params)

    @property
    def track(self) -> Track | None:
        return self._track

    @property
    def waypoints(self) -> Sequence[PhotoWaypoint]:
        return tuple(self._waypoints)

    @property
    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    def load_track(
        self,
        coordinates: Sequence[Sequence[float]],
        coord_times: Sequence[str | None] | None = None,
        tz_name: str = "UTC",
    ) -> Track:
        """Replace the session's track.

        Raises:
            InvalidTrack: If the track has fewer than 2 points. The previous track
                and any run in progress are left as they were.
        """

        track = Track.from_coordinates(coordinates, coord_times, tz_name)
        return self.set_track(track)

    def set_track(self, track: Track) -> Track:
        if len(track) < 2:
            raise InvalidTrack(f"轨迹至少需要 2 个点，当前：{len(track)}")
        self._scheduler.stop()
        self._scheduler = PlaybackScheduler(self._loop, self._sink, self._params)
        self._track = track
        logger.info("已加载轨迹：%s 个点，timestamps=%s", len(track), track.has_timestamps)
        self._emit_initial_framing(track)
        return track

    def add_waypoint(self, photo_ref: str, waypoint_id: str | None = None) -> PhotoWaypoint:
        """Append an unlocated waypoint; its location arrives later via resolve_waypoint().

        Raises:
            ValueError: If waypoint_id is already used in this session.
        """

        wid = waypoint_id if waypoint_id is not None else uuid.uuid4().hex
        if any(wp.id == wid for wp in self._waypoints):
            raise ValueError(f"航点ID重复：{wid!r}")
        wp = PhotoWaypoint(id=wid, photo_ref=photo_ref)
        self._waypoints.append(wp)
        return wp

    def resolve_waypoint(
        self,
        waypoint_id: str,
        latitude: float,
        longitude: float,
        capture_time: datetime | None = None,
    ) -> PhotoWaypoint:
        """Attach a decimal-degree location (and capture time) to a waypoint.

        Raises:
            KeyError: If the waypoint id is unknown.
            ValueError: If the coordinates are out of range.
        """

        if not -90.0 <= latitude <= 90.0:
            raise ValueError(f"纬度超出范围 [-90, 90]：{latitude!r}")
        if not -180.0 <= longitude <= 180.0:
            raise ValueError(f"经度超出范围 [-180, 180]：{longitude!r}")
        wp = self._get_waypoint(waypoint_id)
        wp.location = (float(longitude), float(latitude))
        if capture_time is not None:
            wp.capture_time = capture_time
        self._publish_waypoints()
        return wp

    def start(self) -> None:
        """Start (or restart) playback of the loaded track.

        Raises:
            InvalidTrack: If no track is loaded.
        """

        if self._track is None:
            raise InvalidTrack("尚未加载轨迹")
        self._scheduler.start(self._track, self._waypoints)

    def stop(self) -> None:
        self._scheduler.stop()

    def snapshot(self) -> PlaybackState:
        """Copy of the current playback state."""

        return self._scheduler.state.copy()

    def _get_waypoint(self, waypoint_id: str) -> PhotoWaypoint:
        for wp in self._waypoints:
            if wp.id == waypoint_id:
                return wp
        raise KeyError(f"未知航点ID：{waypoint_id!r}")

    def _emit_initial_framing(self, track: Track) -> None:
        bounds = track.bounds()
        self._emit("on_marker", MarkerState(position=track.start_position))
        self._emit(
            "on_camera",
            CameraPose(
                position=bounds.center,
                bearing=0.0,
                pitch=self._params.overview_pitch_deg,
                zoom=self._params.overview_zoom,
            ),
        )
        self._publish_waypoints()

    def _publish_waypoints(self) -> None:
        located = [wp for wp in self._waypoints if wp.location is not None]
        self._emit("on_waypoints", located)

    def _emit(self, method: str, payload: object) -> None:
        # A failing call must not drop the calls after it.
        try:
            getattr(self._sink, method)(payload)
        except Exception:
            logger.exception("Sink %s 失败", method)
