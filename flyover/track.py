"""Immutable track model and progress-to-position interpolation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from flyover.geo import distance_km
from flyover.models import GeoBounds, InvalidTrack, TrackPoint
from flyover.timeutils import parse_coord_times

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Segment:
    """Interpolation frame for one progress value.

    Attributes:
        index: Floor sample index.
        next_index: min(index + 1, N - 1).
        ratio: Fraction of the way from `index` to `next_index`, in [0, 1).
    """

    index: int
    next_index: int
    ratio: float


@dataclass(frozen=True, slots=True)
class Track:
    """Ordered GPS polyline being visualized.

    Built once per loaded file and read-only for the whole playback session.
    """

    points: tuple[TrackPoint, ...]

    @classmethod
    def build(
        cls,
        points: Iterable[Sequence[float] | TrackPoint],
        timestamps: Sequence[datetime | None] | None = None,
    ) -> Track:
        """Build a track from coordinates and optional parallel timestamps.

        Args:
            points: (longitude, latitude[, elevation]) sequences or TrackPoint objects.
            timestamps: Optional parallel timestamps. Ignored entirely when its
                length does not match the points.

        Returns:
            Track.

        Raises:
            InvalidTrack: If fewer than 2 points are given, or a point has fewer
                than 2 ordinates.
        """

        raw = list(points)
        if len(raw) < 2:
            raise InvalidTrack(f"轨迹至少需要 2 个点，当前：{len(raw)}")

        if timestamps is not None and len(timestamps) != len(raw):
            logger.warning(
                "时间戳数量（%s）与点数（%s）不一致，已忽略全部时间戳", len(timestamps), len(raw)
            )
            timestamps = None

        built: list[TrackPoint] = []
        for i, p in enumerate(raw):
            ts = timestamps[i] if timestamps is not None else None
            if isinstance(p, TrackPoint):
                built.append(p if timestamps is None else TrackPoint(p.longitude, p.latitude, ts))
                continue
            if len(p) < 2:
                raise InvalidTrack(f"第 {i} 个点坐标不足 2 维：{p!r}")
            built.append(TrackPoint(longitude=float(p[0]), latitude=float(p[1]), timestamp=ts))
        return cls(points=tuple(built))

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Sequence[Sequence[float]],
        coord_times: Sequence[str | None] | None = None,
        tz_name: str = "UTC",
    ) -> Track:
        """Build from the track parser output: coordinates plus ISO-8601 coordTimes."""

        return cls.build(coordinates, parse_coord_times(coord_times, len(coordinates), tz_name))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def point_count(self) -> int:
        return len(self.points)

    @property
    def start_position(self) -> tuple[float, float]:
        return self.points[0].position

    @property
    def end_position(self) -> tuple[float, float]:
        return self.points[-1].position

    @property
    def has_timestamps(self) -> bool:
        """True only if every point carries a timestamp."""

        return all(p.timestamp is not None for p in self.points)

    @property
    def duration_seconds(self) -> float | None:
        """Elapsed wall-clock duration, or None unless every point is timestamped."""

        if not self.has_timestamps:
            return None
        first = self.points[0].timestamp
        last = self.points[-1].timestamp
        if first is None or last is None:
            return None
        return (last - first).total_seconds()

    def distance_km(self) -> float:
        """Total path length along the polyline."""

        total = 0.0
        for a, b in zip(self.points, self.points[1:]):
            total += distance_km(a.latitude, a.longitude, b.latitude, b.longitude)
        return total

    def bounds(self) -> GeoBounds:
        lons = [p.longitude for p in self.points]
        lats = [p.latitude for p in self.points]
        return GeoBounds(min_lon=min(lons), min_lat=min(lats), max_lon=max(lons), max_lat=max(lats))

    def segment_at(self, progress: float) -> Segment:
        """Map progress in [0, 1] to the surrounding pair of samples.

        Raises:
            IndexError: If progress maps outside the track (caller did not clamp).
        """

        n = len(self.points)
        float_index = progress * (n - 1)
        if not math.isfinite(float_index):
            raise IndexError(f"进度 {progress!r} 无法映射到轨迹下标")
        index = math.floor(float_index)
        if index < 0 or index > n - 1:
            raise IndexError(f"进度 {progress!r} 对应下标 {index}，轨迹只有 {n} 个点")
        next_index = min(index + 1, n - 1)
        return Segment(index=index, next_index=next_index, ratio=float_index - index)

    def position_at(self, progress: float) -> tuple[float, float]:
        """Linearly interpolated (longitude, latitude) at progress.

        progress=1 returns the last point exactly.
        """

        return self.position_in(self.segment_at(progress))

    def position_in(self, segment: Segment) -> tuple[float, float]:
        cur = self.points[segment.index]
        nxt = self.points[segment.next_index]
        lon = cur.longitude + (nxt.longitude - cur.longitude) * segment.ratio
        lat = cur.latitude + (nxt.latitude - cur.latitude) * segment.ratio
        return (lon, lat)
