"""Shared fixtures: small synthetic tracks and a deterministic loop."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from flyover.loop import SimulatedLoop
from flyover.models import PhotoWaypoint
from flyover.sinks import RecordingSink
from flyover.track import Track

T0 = datetime(2025, 3, 2, 0, 10, tzinfo=UTC)


def north_track(points: int = 11, step_deg: float = 0.001, seconds_per_step: float | None = None) -> Track:
    """Straight track heading north from (0, 0), one sample every `step_deg`."""

    coords = [(0.0, i * step_deg) for i in range(points)]
    stamps = None
    if seconds_per_step is not None:
        stamps = [T0 + timedelta(seconds=i * seconds_per_step) for i in range(points)]
    return Track.build(coords, stamps)


def waypoint(wid: str, lon: float | None = None, lat: float | None = None) -> PhotoWaypoint:
    location = (lon, lat) if lon is not None and lat is not None else None
    return PhotoWaypoint(id=wid, photo_ref=f"{wid}.jpg", location=location)


@pytest.fixture
def track() -> Track:
    """0.01 deg north over 11 points: progress p sits at latitude 0.01 * p."""
    return north_track()


@pytest.fixture
def timed_track() -> Track:
    """Same geometry, 0.001 deg (~111 m) every 30 s: about 4:30 /km."""
    return north_track(seconds_per_step=30.0)


@pytest.fixture
def loop() -> SimulatedLoop:
    """10 ms frames, so elapsed simulated time equals loop time until the first pause."""
    return SimulatedLoop(frame_interval_ms=10.0)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
