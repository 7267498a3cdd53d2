"""Single-threaded frame loops that drive the playback scheduler.

A loop hands out two kinds of callbacks, both identified by integer handles:
  - frame callbacks (one-shot, like requestAnimationFrame): run once on the next
    frame with the frame timestamp in ms;
  - timers (one-shot, like setTimeout): run once `delay_ms` after scheduling.

Nothing here runs callbacks concurrently, so callers need no locking.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]
TimerCallback = Callable[[], None]


class FrameLoop(Protocol):
    """What the scheduler needs from a frame loop."""

    def now_ms(self) -> float: ...

    def request_frame(self, callback: FrameCallback) -> int: ...

    def cancel_frame(self, handle: int) -> None: ...

    def call_later(self, delay_ms: float, callback: TimerCallback) -> int: ...

    def cancel_timer(self, handle: int) -> None: ...


class _BaseLoop:
    """Frame and timer bookkeeping shared by the concrete loops."""

    def __init__(self) -> None:
        self._handles = itertools.count(1)
        self._frames: dict[int, FrameCallback] = {}
        # heap of (due_ms, handle); cancelled handles are dropped from _timer_callbacks
        self._timers: list[tuple[float, int]] = []
        self._timer_callbacks: dict[int, TimerCallback] = {}
        self.frames_run = 0

    def now_ms(self) -> float:
        raise NotImplementedError

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._handles)
        self._frames[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._frames.pop(handle, None)

    def call_later(self, delay_ms: float, callback: TimerCallback) -> int:
        handle = next(self._handles)
        self._timer_callbacks[handle] = callback
        heapq.heappush(self._timers, (self.now_ms() + max(0.0, delay_ms), handle))
        return handle

    def cancel_timer(self, handle: int) -> None:
        self._timer_callbacks.pop(handle, None)

    @property
    def pending_frames(self) -> int:
        return len(self._frames)

    @property
    def pending_timers(self) -> int:
        return len(self._timer_callbacks)

    def has_pending(self) -> bool:
        return bool(self._frames) or bool(self._timer_callbacks)

    def _next_timer_due(self) -> float | None:
        while self._timers and self._timers[0][1] not in self._timer_callbacks:
            heapq.heappop(self._timers)
        return self._timers[0][0] if self._timers else None

    def _pop_timer(self) -> TimerCallback | None:
        _, handle = heapq.heappop(self._timers)
        return self._timer_callbacks.pop(handle, None)

    def _run_frame(self, now_ms: float) -> None:
        # Callbacks requested during this frame belong to the next one.
        frames, self._frames = self._frames, {}
        for cb in frames.values():
            cb(now_ms)
        self.frames_run += 1


class SimulatedLoop(_BaseLoop):
    """Deterministic loop on a virtual clock.

    Frames happen every `frame_interval_ms`; timers fire at their exact due time,
    before a frame scheduled for the same instant.
    """

    def __init__(self, frame_interval_ms: float = 1000.0 / 60.0, start_ms: float = 0.0) -> None:
        if frame_interval_ms <= 0:
            raise ValueError(f"frame_interval_ms 必须为正数，当前：{frame_interval_ms!r}")
        super().__init__()
        self.frame_interval_ms = frame_interval_ms
        self._now = start_ms

    def now_ms(self) -> float:
        return self._now

    def step(self) -> None:
        """Advance the clock by one frame interval."""

        next_frame = self._now + self.frame_interval_ms
        self._fire_timers_until(next_frame)
        self._now = next_frame
        if self._frames:
            self._run_frame(self._now)

    def advance(self, ms: float) -> None:
        """Advance the clock by `ms`, running every frame and timer on the way."""

        end = self._now + ms
        while self._now + self.frame_interval_ms <= end + 1e-9:
            self.step()
        self._fire_timers_until(end)
        self._now = max(self._now, end)

    def run_until_idle(self, max_ms: float | None = None) -> int:
        """Step until no frame or timer is pending.

        Args:
            max_ms: Optional cap on virtual time to run, guarding against loops
                that never finish.

        Returns:
            Number of frames run.
        """

        started = self._now
        frames_before = self.frames_run
        while self.has_pending():
            if max_ms is not None and self._now - started >= max_ms:
                logger.warning("模拟时钟运行 %.0f ms 后仍有待执行回调，已停止", max_ms)
                break
            self.step()
        return self.frames_run - frames_before

    def _fire_timers_until(self, until_ms: float) -> None:
        while True:
            due = self._next_timer_due()
            if due is None or due > until_ms:
                return
            cb = self._pop_timer()
            self._now = max(self._now, due)
            if cb is not None:
                cb()


class RealtimeLoop(_BaseLoop):
    """Blocking wall-clock loop for live previews."""

    def __init__(self, fps: float = 60.0) -> None:
        if fps <= 0:
            raise ValueError(f"fps 必须为正数，当前：{fps!r}")
        super().__init__()
        self.frame_interval_ms = 1000.0 / fps
        self._stopped = False

    def now_ms(self) -> float:
        return time.perf_counter() * 1000.0

    def stop(self) -> None:
        self._stopped = True

    def run(self, max_ms: float | None = None) -> int:
        """Run frames and timers until nothing is pending or stop() is called.

        Returns:
            Number of frames run.
        """

        self._stopped = False
        started = self.now_ms()
        frames_before = self.frames_run
        next_frame_at = started
        while self.has_pending() and not self._stopped:
            now = self.now_ms()
            if max_ms is not None and now - started >= max_ms:
                break
            while True:
                due = self._next_timer_due()
                if due is None or due > now:
                    break
                cb = self._pop_timer()
                if cb is not None:
                    cb()
            if self._frames and now >= next_frame_at:
                self._run_frame(now)
                next_frame_at = now + self.frame_interval_ms
            wake = next_frame_at if self._frames else None
            due = self._next_timer_due()
            if due is not None:
                wake = due if wake is None else min(wake, due)
            if wake is not None:
                time.sleep(max(0.0, (wake - self.now_ms()) / 1000.0))
        return self.frames_run - frames_before
