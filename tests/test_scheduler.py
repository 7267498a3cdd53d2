"""Tests for the playback scheduler state machine."""

from __future__ import annotations

import logging

import pytest

from conftest import waypoint
from flyover.loop import SimulatedLoop
from flyover.models import InvalidTrack, PlaybackParams, PlaybackPhase, TrackPoint
from flyover.scheduler import PlaybackScheduler
from flyover.sinks import FanoutSink, NullSink, RecordingSink
from flyover.track import Track

SHORT = PlaybackParams(duration_ms=1_000.0)


def step_until(loop: SimulatedLoop, predicate, limit: int = 100_000) -> None:
    for _ in range(limit):
        if predicate():
            return
        loop.step()
    raise AssertionError("condition never became true")


class LeakyLoop:
    """A loop that never cancels anything, so stale callbacks can be fired by hand."""

    def __init__(self) -> None:
        self.now = 0.0
        self.frames: list = []
        self.timers: list = []

    def now_ms(self) -> float:
        return self.now

    def request_frame(self, callback) -> int:
        self.frames.append(callback)
        return len(self.frames)

    def cancel_frame(self, handle: int) -> None:
        pass

    def call_later(self, delay_ms: float, callback) -> int:
        self.timers.append(callback)
        return len(self.timers)

    def cancel_timer(self, handle: int) -> None:
        pass


class ExplodingSink(RecordingSink):
    def on_camera(self, camera) -> None:
        raise RuntimeError("renderer went away")


class BrokenCompletionSink(NullSink):
    def on_complete(self, event) -> None:
        raise RuntimeError("display closed")


class HookSink(RecordingSink):
    """Records events and runs a one-shot hook from inside one kind of callback."""

    def __init__(self, event: str) -> None:
        super().__init__()
        self.event = event
        self.hook = None

    def on_overlay(self, overlay) -> None:
        super().on_overlay(overlay)
        self._fire("on_overlay")

    def on_camera(self, camera) -> None:
        super().on_camera(camera)
        self._fire("on_camera")

    def _fire(self, event: str) -> None:
        if event == self.event and self.hook is not None:
            hook, self.hook = self.hook, None
            hook()


class FlakyTrack(Track):
    """Pretends the first half of the track has no interpolation frame."""

    def segment_at(self, progress: float):
        if progress < 0.5:
            raise IndexError("no segment")
        return super().segment_at(progress)


class TestStart:
    def test_initial_state(self, loop: SimulatedLoop, sink: RecordingSink) -> None:
        s = PlaybackScheduler(loop, sink)
        assert s.phase is PlaybackPhase.IDLE
        assert s.state.progress == 0.0

    def test_start_resets_state(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        wp = waypoint("a", 5.0, 5.0)
        wp.shown = True
        s = PlaybackScheduler(loop, sink)
        s.start(track, [wp])
        assert s.phase is PlaybackPhase.PLAYING
        assert s.state.elapsed_ms == 0.0
        assert s.state.is_paused is False
        assert wp.shown is False
        assert loop.pending_frames == 1

    def test_rejects_short_track_without_touching_state(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        s = PlaybackScheduler(loop, sink)
        with pytest.raises(InvalidTrack):
            s.start(Track(points=(TrackPoint(0.0, 0.0),)), [])
        assert s.phase is PlaybackPhase.IDLE
        assert not loop.has_pending()

        s.start(track, [])
        loop.advance(100.0)
        elapsed = s.state.elapsed_ms
        with pytest.raises(InvalidTrack):
            s.start(Track(points=()), [])
        assert s.phase is PlaybackPhase.PLAYING
        assert s.state.elapsed_ms == elapsed
        assert loop.pending_frames == 1

    def test_rejects_bad_params(self, loop: SimulatedLoop) -> None:
        with pytest.raises(ValueError):
            PlaybackScheduler(loop, params=PlaybackParams(duration_ms=0.0))


class TestFullRun:
    def test_runs_sixty_seconds_and_completes(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [])
        frames = loop.run_until_idle()

        assert frames == 6000
        assert loop.now_ms() == 60_000.0
        assert s.phase is PlaybackPhase.COMPLETED
        assert s.state.progress == 1.0
        assert s.state.is_playing is False
        assert sink.markers[-1].position == track.end_position
        assert len(sink.completions) == 1
        assert sink.completions[0].final_position == track.end_position

    def test_progress_non_decreasing(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [waypoint("a", 0.0, 0.002), waypoint("b", 0.0, 0.007)])
        seen: list[float] = []
        while loop.has_pending():
            loop.step()
            seen.append(s.state.progress)
        assert seen == sorted(seen)
        assert seen[-1] == 1.0

    def test_ticks_after_completion_do_nothing(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [])
        loop.run_until_idle()
        markers = len(sink.markers)
        s.tick(1_000_000.0)
        assert s.state.elapsed_ms == 60_000.0
        assert len(sink.markers) == markers
        assert not loop.has_pending()

    def test_camera_rotates_with_simulated_time(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [])
        loop.advance(1_000.0)
        cam = sink.cameras[-1]
        assert cam.bearing == pytest.approx(20.0)
        assert cam.pitch == 50.0
        assert cam.zoom == 14.0
        assert cam.position == sink.markers[-1].position

        loop.advance(17_000.0)
        assert sink.cameras[-1].bearing == pytest.approx(0.0, abs=1e-6)


class TestWaypointPause:
    def test_pause_freezes_simulated_time(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        wp = waypoint("mid", 0.0, 0.005)
        s = PlaybackScheduler(loop, sink)
        s.start(track, [wp])

        step_until(loop, lambda: s.state.is_paused)
        paused_at = loop.now_ms()
        frozen = s.state.elapsed_ms
        assert 27_000.0 <= frozen <= 27_020.0
        assert s.phase is PlaybackPhase.PAUSED
        assert s.state.active_waypoint_id == "mid"
        assert wp.shown is True
        assert sink.overlays[-1].active is True
        assert sink.overlays[-1].photo_ref == "mid.jpg"

        loop.advance(500.0)
        assert s.state.is_paused
        assert s.state.elapsed_ms == frozen

        step_until(loop, lambda: not s.state.is_paused)
        assert loop.now_ms() == pytest.approx(paused_at + 1_000.0)
        assert s.state.active_waypoint_id is None
        assert sink.overlays[-1].active is False

        # The frame at the resume instant added nothing; the next adds one frame.
        assert s.state.elapsed_ms == frozen
        loop.step()
        assert s.state.elapsed_ms == pytest.approx(frozen + 10.0)

    def test_waypoint_triggers_once_per_run(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [waypoint("mid", 0.0, 0.005)])
        loop.run_until_idle()

        assert sink.triggered_ids == ["mid"]
        assert loop.now_ms() == pytest.approx(61_000.0)
        assert sink.completions[0].waypoints_shown == 1

    def test_first_inserted_wins_when_both_in_range(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        a = waypoint("a", 0.0, 0.005)
        b = waypoint("b", 0.0, 0.005)
        s = PlaybackScheduler(loop, sink)
        s.start(track, [a, b])

        step_until(loop, lambda: bool(sink.overlays))
        assert s.state.active_waypoint_id == "a"
        assert a.shown is True
        assert b.shown is False

        loop.run_until_idle()
        assert sink.triggered_ids == ["a", "b"]

    def test_unlocated_waypoints_never_trigger(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [waypoint("nogps")])
        loop.run_until_idle()
        assert sink.triggered_ids == []

    def test_waypoint_resolved_mid_run_is_detected(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        late = waypoint("late")
        s = PlaybackScheduler(loop, sink)
        s.start(track, [late])
        loop.advance(10_000.0)
        late.location = (0.0, 0.008)
        loop.run_until_idle()
        assert sink.triggered_ids == ["late"]

    def test_hit_on_last_frame_completes(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        # A box this small is only entered on the final, snapped frame.
        s = PlaybackScheduler(loop, sink, PlaybackParams(proximity_deg=1e-9))
        end_lon, end_lat = track.end_position
        s.start(track, [waypoint("end", end_lon, end_lat)])
        loop.run_until_idle()
        assert loop.now_ms() == pytest.approx(61_000.0)
        assert s.phase is PlaybackPhase.COMPLETED
        assert s.state.is_paused is False
        assert len(sink.completions) == 1
        assert [o.active for o in sink.overlays] == [True, False]


class TestRestartAndStop:
    def test_double_start_keeps_one_loop(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [])
        loop.advance(500.0)
        s.start(track, [])
        assert loop.pending_frames == 1
        assert s.state.elapsed_ms == 0.0

        frames = loop.run_until_idle()
        assert frames == 6000
        assert len(sink.completions) == 1

    def test_restart_during_pause_cancels_resume(
        self, loop: SimulatedLoop, sink: RecordingSink, track: Track
    ) -> None:
        wp = waypoint("mid", 0.0, 0.005)
        s = PlaybackScheduler(loop, sink)
        s.start(track, [wp])
        step_until(loop, lambda: s.state.is_paused)
        assert loop.pending_timers == 1

        s.start(track, [wp])
        assert loop.pending_timers == 0
        assert loop.pending_frames == 1
        assert wp.shown is False
        assert s.state.active_waypoint_id is None

        loop.run_until_idle()
        assert [o.active for o in sink.overlays] == [True, True, False]
        assert len(sink.completions) == 1

    def test_stale_callbacks_are_ignored(self, track: Track) -> None:
        leaky = LeakyLoop()
        sink = RecordingSink()
        s = PlaybackScheduler(leaky, sink)
        wp = waypoint("origin", 0.0, 0.0)

        s.start(track, [wp])
        leaky.now = 10.0
        leaky.frames[0](10.0)
        assert s.state.is_paused
        first_resume = leaky.timers[0]

        leaky.now = 20.0
        s.start(track, [wp])
        stale_frame = leaky.frames[1]
        stale_frame(30.0)  # frame re-armed by the paused run of generation 1
        assert s.state.elapsed_ms == 0.0

        leaky.now = 40.0
        leaky.frames[-1](40.0)
        assert s.state.is_paused
        first_resume()
        assert s.state.is_paused
        assert s.state.active_waypoint_id == "origin"

        leaky.timers[-1]()
        assert not s.state.is_paused

    def test_stop_cancels_everything(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [waypoint("mid", 0.0, 0.005)])
        step_until(loop, lambda: s.state.is_paused)
        s.stop()

        assert not loop.has_pending()
        assert s.phase is PlaybackPhase.IDLE
        elapsed = s.state.elapsed_ms
        s.tick(loop.now_ms() + 100.0)
        assert s.state.elapsed_ms == elapsed


class TestPace:
    def test_pace_throttled_to_one_hz(self, loop: SimulatedLoop, sink: RecordingSink, timed_track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(timed_track, [])
        loop.run_until_idle()
        assert 55 <= len(sink.paces) <= 62
        assert set(sink.paces) == {"4:30 /km"}
        assert s.last_pace == "4:30 /km"

    def test_no_pace_without_timestamps(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        s = PlaybackScheduler(loop, sink)
        s.start(track, [])
        loop.run_until_idle()
        assert sink.paces == []
        assert s.last_pace is None


class TestRobustness:
    def test_sink_failure_does_not_stall(self, loop: SimulatedLoop, track: Track, caplog) -> None:
        sink = ExplodingSink()
        s = PlaybackScheduler(loop, sink, SHORT)
        s.start(track, [])
        with caplog.at_level(logging.ERROR, logger="flyover.scheduler"):
            loop.run_until_idle()
        assert s.phase is PlaybackPhase.COMPLETED
        assert len(sink.completions) == 1
        assert "on_camera" in caplog.text

    def test_malformed_frames_are_skipped(self, loop: SimulatedLoop, sink: RecordingSink, track: Track) -> None:
        flaky = FlakyTrack(points=track.points)
        s = PlaybackScheduler(loop, sink, SHORT)
        s.start(flaky, [])
        loop.run_until_idle()

        assert s.phase is PlaybackPhase.COMPLETED
        assert sink.markers
        assert sink.markers[0].position[1] >= 0.005 - 1e-12
        assert sink.markers[-1].position == track.end_position

    def test_failing_sink_does_not_starve_the_others(self, loop: SimulatedLoop, track: Track, caplog) -> None:
        recorder = RecordingSink()
        s = PlaybackScheduler(loop, FanoutSink([BrokenCompletionSink(), recorder]), SHORT)
        s.start(track, [])
        with caplog.at_level(logging.ERROR, logger="flyover.sinks"):
            loop.run_until_idle()
        assert len(recorder.completions) == 1
        assert "on_complete" in caplog.text


class TestSinkReentrancy:
    """Sinks may call start() or stop() from inside a callback."""

    def test_restart_inside_overlay(self, loop: SimulatedLoop, track: Track) -> None:
        wp = waypoint("mid", 0.0, 0.005)
        sink = HookSink("on_overlay")
        s = PlaybackScheduler(loop, sink)
        sink.hook = lambda: s.start(track, [wp])
        s.start(track, [wp])

        step_until(loop, lambda: bool(sink.overlays))
        assert s.phase is PlaybackPhase.PLAYING
        assert s.state.elapsed_ms == 0.0
        assert loop.pending_timers == 0
        assert loop.pending_frames == 1
        # The interrupted frame sent its marker but no camera pose.
        assert len(sink.cameras) == len(sink.markers) - 1

        loop.run_until_idle()
        assert sink.triggered_ids == ["mid", "mid"]
        assert [o.active for o in sink.overlays] == [True, True, False]
        assert len(sink.completions) == 1
        assert sink.completions[0].elapsed_ms == pytest.approx(60_000.0)

    def test_stop_inside_overlay(self, loop: SimulatedLoop, track: Track) -> None:
        sink = HookSink("on_overlay")
        s = PlaybackScheduler(loop, sink)
        sink.hook = s.stop
        s.start(track, [waypoint("mid", 0.0, 0.005)])

        step_until(loop, lambda: bool(sink.overlays))
        assert not loop.has_pending()
        assert s.phase is PlaybackPhase.IDLE
        assert s.state.active_waypoint_id is None
        assert len(sink.cameras) == len(sink.markers) - 1
        assert sink.completions == []

    def test_stop_inside_camera(self, loop: SimulatedLoop, timed_track: Track) -> None:
        sink = HookSink("on_camera")
        s = PlaybackScheduler(loop, sink)
        sink.hook = s.stop
        s.start(timed_track, [])

        loop.step()
        assert len(sink.cameras) == 1
        assert sink.paces == []
        assert s.last_pace is None
        assert not loop.has_pending()
