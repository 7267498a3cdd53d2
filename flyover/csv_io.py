"""CSV input/output: already-parsed track coordinates, photo waypoints, per-frame export."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

from flyover.timeutils import parse_instant_or_none

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


@dataclass(frozen=True, slots=True)
class TrackRows:
    """Track parser output: coordinates plus optional parallel coordTimes."""

    coordinates: list[tuple[float, float]]
    coord_times: list[str | None] | None


@dataclass(frozen=True, slots=True)
class WaypointRow:
    """One photo from the metadata extractor (location already in decimal degrees)."""

    id: str
    photo_ref: str
    latitude: float | None
    longitude: float | None
    capture_time: datetime | None


def _parse_float(value: str) -> float:
    return float(value.strip())


def _optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return _parse_float(value)


def _require_columns(fieldnames: Sequence[str] | None, required: Sequence[str], path: Path) -> None:
    missing = [c for c in required if c not in (fieldnames or ())]
    if missing:
        raise KeyError(f"CSV缺少必要字段：{missing}（{path}）. 实际字段：{list(fieldnames or ())}")


def load_track_csv(csv_path: str | Path) -> tuple[TrackRows, CsvSummary]:
    """Load a track CSV with `longitude`, `latitude` and optional `time` columns.

    Args:
        csv_path: Path to the CSV.

    Returns:
        (rows, summary). coord_times is None when the file has no `time` column.

    Raises:
        KeyError: If longitude/latitude columns are missing.
    """

    p = Path(csv_path)
    rows_total = 0
    coords: list[tuple[float, float]] = []
    times: list[str | None] = []

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames: Sequence[str] = reader.fieldnames or ()
        _require_columns(fieldnames, ("longitude", "latitude"), p)
        has_time = "time" in fieldnames
        for row in reader:
            rows_total += 1
            try:
                lon = _parse_float(row["longitude"])
                lat = _parse_float(row["latitude"])
            except (KeyError, ValueError, TypeError, AttributeError):
                # broken / blank rows are skipped
                continue
            coords.append((lon, lat))
            if has_time:
                t = (row.get("time") or "").strip()
                times.append(t or None)

    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(coords),
        rows_skipped=rows_total - len(coords),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("CSV中有 %s 行解析失败已跳过（%s）", summary.rows_skipped, p)
    return TrackRows(coordinates=coords, coord_times=times if has_time else None), summary


def load_waypoints_csv(csv_path: str | Path, tz_name: str = "UTC") -> list[WaypointRow]:
    """Load photo waypoints: `id`, `photo_ref`, optional `latitude`, `longitude`, `capture_time`.

    Rows with blank or broken coordinates become unlocated waypoints.

    Raises:
        KeyError: If the id column is missing.
    """

    p = Path(csv_path)
    out: list[WaypointRow] = []
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        _require_columns(reader.fieldnames, ("id",), p)
        for row in reader:
            wid = (row.get("id") or "").strip()
            if not wid:
                continue
            try:
                lat = _optional_float(row.get("latitude"))
                lon = _optional_float(row.get("longitude"))
            except ValueError:
                logger.warning("航点 %s 坐标无法解析，按无定位处理", wid)
                lat = lon = None
            if lat is None or lon is None:
                lat = lon = None
            out.append(
                WaypointRow(
                    id=wid,
                    photo_ref=(row.get("photo_ref") or "").strip(),
                    latitude=lat,
                    longitude=lon,
                    capture_time=parse_instant_or_none(row.get("capture_time"), tz_name),
                )
            )
    return out


@dataclass(frozen=True, slots=True)
class FrameRow:
    """One rendered frame of a headless run."""

    frame: int
    t_ms: float
    elapsed_ms: float
    progress: float
    longitude: float
    latitude: float
    bearing: float
    pitch: float
    zoom: float
    paused: bool
    active_waypoint_id: str | None
    pace: str | None


def write_frames_csv(frames: Iterable[FrameRow], out_path: str | Path) -> None:
    """Write per-frame camera/marker state for offline rendering."""

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "frame",
                "t_ms",
                "elapsed_ms",
                "progress",
                "longitude",
                "latitude",
                "bearing",
                "pitch",
                "zoom",
                "paused",
                "active_waypoint_id",
                "pace",
            ],
        )
        w.writeheader()
        for fr in frames:
            w.writerow(
                {
                    "frame": fr.frame,
                    "t_ms": f"{fr.t_ms:.3f}",
                    "elapsed_ms": f"{fr.elapsed_ms:.3f}",
                    "progress": f"{fr.progress:.6f}",
                    "longitude": f"{fr.longitude:.7f}",
                    "latitude": f"{fr.latitude:.7f}",
                    "bearing": f"{fr.bearing:.3f}",
                    "pitch": fr.pitch,
                    "zoom": fr.zoom,
                    "paused": int(fr.paused),
                    "active_waypoint_id": fr.active_waypoint_id or "",
                    "pace": fr.pace or "",
                }
            )
