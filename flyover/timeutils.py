"""Time parsing and formatting utilities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo


def tzinfo_from_name(tz_name: str) -> tzinfo:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Asia/Tokyo" or "UTC".

    Returns:
        tzinfo instance.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    if tz_name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"无效时区：{tz_name!r}。例如可用：Asia/Tokyo") from exc


def parse_instant(text: str, tz_name: str = "UTC") -> datetime:
    """Parse an ISO-8601 instant to a timezone-aware datetime.

    Supported formats:
      - "2024-03-03T09:10:00Z" (GPX coordTimes)
      - "2024-03-03T09:10:00.123+09:00"
      - "2024-03-03 09:10:00" (naive, assumed to be tz_name)

    Args:
        text: Datetime string.
        tz_name: IANA timezone name for naive strings.

    Returns:
        Timezone-aware datetime.

    Raises:
        ValueError: If cannot parse.
    """

    s = text.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"无法解析时间：{text!r}。建议格式：2024-03-03T09:10:00Z") from exc

    if dt.tzinfo is None:
        return dt.replace(tzinfo=tzinfo_from_name(tz_name))
    return dt


def parse_instant_or_none(text: str | None, tz_name: str = "UTC") -> datetime | None:
    """Like parse_instant, but garbled or empty input yields None."""

    if text is None or not str(text).strip():
        return None
    try:
        return parse_instant(str(text), tz_name)
    except ValueError:
        return None


def parse_coord_times(
    coord_times: Sequence[str | None] | None,
    expected_len: int,
    tz_name: str = "UTC",
) -> list[datetime | None] | None:
    """Parse the track parser's parallel coordTimes list.

    Returns:
        One entry per coordinate, or None when the list is missing or its length
        does not match the coordinates (timestamps are then treated as absent).
    """

    if coord_times is None or len(coord_times) != expected_len:
        return None
    return [parse_instant_or_none(t, tz_name) for t in coord_times]


def epoch_ms_from_dt(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds.

    Args:
        dt: Datetime. If naive, will be treated as UTC (discouraged).

    Returns:
        Epoch milliseconds.
    """

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def format_hhmmss(seconds: float) -> str:
    s = int(round(max(0.0, seconds)))
    h = s // 3600
    m = (s % 3600) // 60
    sec = s % 60
    return f"{h:02d}:{m:02d}:{sec:02d}"


@dataclass(frozen=True, slots=True)
class DeltaStats:
    """Sampling interval stats (seconds)."""

    count: int
    min_s: float
    median_s: float
    p95_s: float
    max_s: float


def delta_stats(epoch_ms_sorted: Iterable[int]) -> DeltaStats | None:
    """Compute basic sampling-interval statistics.

    Args:
        epoch_ms_sorted: Epoch ms sorted ascending.

    Returns:
        DeltaStats or None if less than 2 points.
    """

    ms = list(epoch_ms_sorted)
    if len(ms) < 2:
        return None
    deltas = [(ms[i] - ms[i - 1]) / 1000.0 for i in range(1, len(ms)) if ms[i] >= ms[i - 1]]
    if not deltas:
        return None
    deltas.sort()
    n = len(deltas)
    median = deltas[n // 2] if n % 2 == 1 else 0.5 * (deltas[n // 2 - 1] + deltas[n // 2])
    p95 = deltas[int(0.95 * (n - 1))]
    return DeltaStats(
        count=n,
        min_s=deltas[0],
        median_s=median,
        p95_s=p95,
        max_s=deltas[-1],
    )
