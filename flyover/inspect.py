"""Inspect a loaded track before playback."""

from __future__ import annotations

from dataclasses import dataclass

from flyover.pace import average_pace
from flyover.timeutils import DeltaStats, delta_stats, epoch_ms_from_dt
from flyover.track import Track


@dataclass(frozen=True, slots=True)
class TrackSummary:
    """High-level track inspection result."""

    points: int
    timestamped_points: int
    has_timestamps: bool
    start_time: str | None
    end_time: str | None
    duration_s: float | None
    distance_km: float
    average_pace: str | None
    delta: DeltaStats | None
    duplicates_time: int
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


def summarize_track(track: Track) -> TrackSummary:
    """Inspect an already-built track."""

    stamped = [p.timestamp for p in track.points if p.timestamp is not None]
    times = sorted(epoch_ms_from_dt(t) for t in stamped)
    dupe = 0
    for i in range(1, len(times)):
        if times[i] == times[i - 1]:
            dupe += 1

    bounds = track.bounds()
    first = track.points[0].timestamp
    last = track.points[-1].timestamp
    return TrackSummary(
        points=len(track),
        timestamped_points=len(stamped),
        has_timestamps=track.has_timestamps,
        start_time=first.isoformat() if first is not None else None,
        end_time=last.isoformat() if last is not None else None,
        duration_s=track.duration_seconds,
        distance_km=track.distance_km(),
        average_pace=average_pace(track),
        delta=delta_stats(times),
        duplicates_time=dupe,
        min_lat=bounds.min_lat,
        max_lat=bounds.max_lat,
        min_lon=bounds.min_lon,
        max_lon=bounds.max_lon,
    )
