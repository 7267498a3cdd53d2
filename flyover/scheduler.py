"""Frame-driven playback state machine.

Idle -> Playing -> (Paused <-> Playing) -> Completed. Each frame advances simulated
time, interpolates the runner position, pauses at the first unshown waypoint in
range, rotates the camera and refreshes the pace at most once per second.

Every scheduled callback carries the generation it was created for; start() and
stop() bump the generation, so callbacks from an earlier run become no-ops even if
a loop fires them late.
"""

from __future__ import annotations

import logging
from typing import Sequence

from flyover.loop import FrameLoop
from flyover.models import (
    DEFAULT_PARAMS,
    CameraPose,
    CompletionEvent,
    InvalidTrack,
    MarkerState,
    OverlayEvent,
    PhotoWaypoint,
    PlaybackParams,
    PlaybackPhase,
    PlaybackState,
)
from flyover.pace import estimate_pace
from flyover.proximity import ProximityBox, check_proximity
from flyover.sinks import NullSink, PlaybackSink
from flyover.track import Segment, Track

logger = logging.getLogger(__name__)


class PlaybackScheduler:
    """Drives one track's playback on a frame loop and reports to a sink."""

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
        self._box = ProximityBox(half_size_deg=params.proximity_deg)

        self.state = PlaybackState()
        self._track: Track | None = None
        self._waypoints: Sequence[PhotoWaypoint] = ()
        self._generation = 0
        self._frame_handle: int | None = None
        self._resume_handle: int | None = None
        self._last_frame_ms = 0.0
        self._last_pace_ms: float | None = None
        self.last_pace: str | None = None

    @property
    def phase(self) -> PlaybackPhase:
        return self.state.phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def params(self) -> PlaybackParams:
        return self._params

    def start(self, track: Track, waypoints: Sequence[PhotoWaypoint]) -> None:
        """Begin a new run from progress 0, tearing down any run in flight.

        Args:
            track: Track to play. Must have at least 2 points.
            waypoints: Session waypoints in insertion order. The list is read on
                every frame, so waypoints resolved mid-run are picked up.

        Raises:
            InvalidTrack: If the track is missing or too short. State is left untouched.
        """

        if track is None or len(track) < 2:
            raise InvalidTrack("无法开始播放：轨迹至少需要 2 个点")

        self._cancel_pending()
        self._generation += 1
        self._track = track
        self._waypoints = waypoints
        for wp in waypoints:
            wp.shown = False

        self.state = PlaybackState(is_playing=True)
        self._last_frame_ms = self._loop.now_ms()
        self._last_pace_ms = None
        self.last_pace = None
        logger.info(
            "开始播放（generation=%s，points=%s，waypoints=%s）",
            self._generation,
            len(track),
            len(waypoints),
        )
        self._rearm()

    def stop(self) -> None:
        """Cancel the current run; pending frames and resume timers become no-ops."""

        self._cancel_pending()
        self._generation += 1
        was_playing = self.state.is_playing
        self.state.is_playing = False
        self.state.is_paused = False
        self.state.active_waypoint_id = None
        if was_playing:
            logger.info("播放已停止，progress=%.3f", self.state.progress)

    def tick(self, now_ms: float) -> None:
        """Process one frame at wall-clock time `now_ms`."""

        state = self.state
        track = self._track
        if not state.is_playing or track is None:
            return
        # A sink may call start() or stop() from inside a callback; once the
        # generation moves on, this frame must not touch the new run.
        generation = self._generation

        delta_ms = now_ms - self._last_frame_ms
        self._last_frame_ms = now_ms

        if state.is_paused:
            # Paused: simulated time is frozen, the loop keeps running.
            self._rearm()
            return

        state.elapsed_ms += max(0.0, delta_ms)
        state.progress = min(state.elapsed_ms / self._params.duration_ms, 1.0)

        try:
            segment = track.segment_at(state.progress)
        except IndexError:
            logger.debug("跳过无法插值的帧，progress=%r", state.progress)
            self._rearm()
            return

        position = track.position_in(segment)
        self._emit("on_marker", MarkerState(position=position))
        if self._generation != generation:
            return

        hit = check_proximity(position, self._waypoints, self._box)
        if hit is not None:
            self._begin_pause(hit)
            if self._generation != generation:
                return

        state.bearing_deg = (state.elapsed_ms * self._params.rotation_deg_per_ms) % 360.0
        self._emit(
            "on_camera",
            CameraPose(
                position=position,
                bearing=state.bearing_deg,
                pitch=self._params.pitch_deg,
                zoom=self._params.zoom,
            ),
        )
        if self._generation != generation:
            return

        self._maybe_update_pace(now_ms, track, segment)
        if self._generation != generation:
            return

        if state.progress >= 1.0:
            self._complete(track)
            return

        self._rearm()

    def _begin_pause(self, waypoint_id: str) -> None:
        wp = self._find_waypoint(waypoint_id)
        wp.shown = True
        self.state.is_paused = True
        self.state.active_waypoint_id = waypoint_id
        logger.debug("在航点 %s 暂停（progress=%.3f）", waypoint_id, self.state.progress)

        # Armed before the overlay goes out, so a restart inside the sink cancels it.
        generation = self._generation
        self._resume_handle = self._loop.call_later(
            self._params.pause_ms, lambda: self._resume(generation, wp)
        )
        self._emit("on_overlay", OverlayEvent(waypoint_id=waypoint_id, photo_ref=wp.photo_ref, active=True))

    def _resume(self, generation: int, wp: PhotoWaypoint) -> None:
        if generation != self._generation:
            return
        self._resume_handle = None
        self.state.active_waypoint_id = None
        self.state.is_paused = False
        # The next frame's delta must not include the pause.
        self._last_frame_ms = self._loop.now_ms()
        logger.debug("航点 %s 暂停结束，继续播放", wp.id)
        self._emit("on_overlay", OverlayEvent(waypoint_id=wp.id, photo_ref=wp.photo_ref, active=False))

    def _maybe_update_pace(self, now_ms: float, track: Track, segment: Segment) -> None:
        if self._last_pace_ms is not None and now_ms - self._last_pace_ms <= self._params.pace_interval_ms:
            return
        self._last_pace_ms = now_ms
        pace = estimate_pace(track, segment.index, segment.next_index, self._params.max_pace_minutes)
        if pace is None:
            return
        self.last_pace = pace
        self._emit("on_pace", pace)

    def _complete(self, track: Track) -> None:
        state = self.state
        final_position = track.end_position
        state.is_playing = False
        # A waypoint hit on the last frame keeps its overlay until its resume timer fires.
        state.is_paused = False
        state.completed = True
        self._frame_handle = None
        generation = self._generation
        self._emit("on_marker", MarkerState(position=final_position))
        if self._generation != generation:
            return
        shown = sum(1 for wp in self._waypoints if wp.shown)
        logger.info("播放完成（elapsed_ms=%.0f，waypoints_shown=%s）", state.elapsed_ms, shown)
        self._emit(
            "on_complete",
            CompletionEvent(final_position=final_position, elapsed_ms=state.elapsed_ms, waypoints_shown=shown),
        )

    def _rearm(self) -> None:
        if self._frame_handle is not None:
            self._loop.cancel_frame(self._frame_handle)
        generation = self._generation
        self._frame_handle = self._loop.request_frame(lambda now: self._on_frame(generation, now))

    def _on_frame(self, generation: int, now_ms: float) -> None:
        if generation != self._generation:
            return
        self._frame_handle = None
        self.tick(now_ms)

    def _cancel_pending(self) -> None:
        if self._frame_handle is not None:
            self._loop.cancel_frame(self._frame_handle)
            self._frame_handle = None
        if self._resume_handle is not None:
            self._loop.cancel_timer(self._resume_handle)
            self._resume_handle = None

    def _find_waypoint(self, waypoint_id: str) -> PhotoWaypoint:
        for wp in self._waypoints:
            if wp.id == waypoint_id:
                return wp
        raise KeyError(f"未知航点ID：{waypoint_id!r}")

    def _emit(self, method: str, payload: object) -> None:
        # A failing sink must not stop the frame loop.
        try:
            getattr(self._sink, method)(payload)
        except Exception:
            logger.exception("Sink %s 失败", method)
