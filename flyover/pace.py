"""Running pace (minutes per km) from timestamped track samples."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from flyover.geo import distance_km
from flyover.track import Track

MAX_PACE_MINUTES = 30


def format_pace(minutes_per_km: float) -> str:
    """Format a pace as "<M>:<SS> /km"."""

    total_s = int(round(minutes_per_km * 60.0))
    m, s = divmod(total_s, 60)
    return f"{m}:{s:02d} /km"


def pace_minutes(distance: float, elapsed_hours: float, max_pace_minutes: int = MAX_PACE_MINUTES) -> float | None:
    """Minutes per km for a distance covered in elapsed_hours.

    Returns None for non-positive time or distance, and for a whole-minute pace of
    `max_pace_minutes` or slower (stopped segment or GPS noise).
    """

    if elapsed_hours <= 0 or distance <= 0:
        return None
    speed_kmh = distance / elapsed_hours
    pace = 60.0 / speed_kmh
    if math.floor(pace) >= max_pace_minutes:
        return None
    return pace


def estimate_pace(
    track: Track,
    index: int,
    next_index: int,
    max_pace_minutes: int = MAX_PACE_MINUTES,
) -> str | None:
    """Instantaneous pace between two track samples.

    Has no timing state of its own; the scheduler throttles calls.

    Args:
        track: Loaded track.
        index: First sample index.
        next_index: Second sample index.
        max_pace_minutes: Whole-minute pace at or above this is suppressed.

    Returns:
        Formatted pace, or None when timestamps are missing or the pace is not a running pace.
    """

    a = track.points[index]
    b = track.points[next_index]
    if a.timestamp is None or b.timestamp is None:
        return None
    elapsed_hours = (b.timestamp - a.timestamp).total_seconds() / 3600.0
    dist = distance_km(a.latitude, a.longitude, b.latitude, b.longitude)
    pace = pace_minutes(dist, elapsed_hours, max_pace_minutes)
    if pace is None:
        return None
    return format_pace(pace)


@dataclass(frozen=True, slots=True)
class SegmentPace:
    """Pace of one track segment."""

    index: int
    distance_km: float
    seconds: float
    pace: str


def iter_segment_paces(track: Track, max_pace_minutes: int = MAX_PACE_MINUTES) -> Iterator[SegmentPace]:
    """Yield the pace of every segment that has one."""

    for i in range(len(track) - 1):
        pace = estimate_pace(track, i, i + 1, max_pace_minutes)
        if pace is None:
            continue
        a = track.points[i]
        b = track.points[i + 1]
        if a.timestamp is None or b.timestamp is None:
            continue
        yield SegmentPace(
            index=i,
            distance_km=distance_km(a.latitude, a.longitude, b.latitude, b.longitude),
            seconds=(b.timestamp - a.timestamp).total_seconds(),
            pace=pace,
        )


def average_pace(track: Track, max_pace_minutes: int = MAX_PACE_MINUTES) -> str | None:
    """Whole-track average pace, or None without full timestamps."""

    seconds = track.duration_seconds
    if seconds is None:
        return None
    pace = pace_minutes(track.distance_km(), seconds / 3600.0, max_pace_minutes)
    return None if pace is None else format_pace(pace)
