from __future__ import annotations

import argparse
import csv
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Course:
    name: str
    lat: float
    lon: float
    radius_m: float


def _offset(lat: float, lon: float, north_m: float, east_m: float) -> tuple[float, float]:
    """Shift a lat/lon by meters (small-distance approximation)."""

    d_lat = north_m / 111_320.0
    d_lon = east_m / (111_320.0 * math.cos(math.radians(lat)))
    return lat + d_lat, lon + d_lon


def generate_track(
    *,
    rows: int,
    seed: int,
    start_utc: datetime,
    course: Course,
    pace_s_per_km: float,
) -> list[dict[str, str]]:
    """Generate one lap around a circular course with jittered GPS and a mid-run stop."""

    rng = random.Random(seed)
    cur = start_utc
    out: list[dict[str, str]] = []
    circumference_m = 2.0 * math.pi * course.radius_m
    step_m = circumference_m / max(1, rows - 1)
    stop_at = rows // 2

    for i in range(rows):
        angle = 2.0 * math.pi * i / max(1, rows - 1)
        north = course.radius_m * math.cos(angle) + rng.uniform(-2.0, 2.0)
        east = course.radius_m * math.sin(angle) + rng.uniform(-2.0, 2.0)
        lat, lon = _offset(course.lat, course.lon, north, east)

        out.append(
            {
                "longitude": f"{lon:.7f}",
                "latitude": f"{lat:.7f}",
                "time": cur.isoformat().replace("+00:00", "Z"),
            }
        )

        # A traffic light: standing still for a while (pace display should go blank).
        if i == stop_at:
            cur = cur + timedelta(seconds=rng.uniform(30, 60))
            out.append({**out[-1], "time": cur.isoformat().replace("+00:00", "Z")})
        seconds = step_m / 1000.0 * pace_s_per_km * rng.uniform(0.9, 1.1)
        cur = cur + timedelta(seconds=seconds)

    return out


def generate_photos(track_rows: list[dict[str, str]], count: int, seed: int) -> list[dict[str, str]]:
    """Pick photo locations on the track, plus one photo without GPS."""

    rng = random.Random(seed)
    picks = sorted(rng.sample(range(1, len(track_rows) - 1), k=min(count, max(0, len(track_rows) - 2))))
    out = []
    for n, idx in enumerate(picks, start=1):
        r = track_rows[idx]
        out.append(
            {
                "id": f"photo-{n:02d}",
                "photo_ref": f"IMG_{1000 + n}.jpg",
                "latitude": r["latitude"],
                "longitude": r["longitude"],
                "capture_time": r["time"],
            }
        )
    out.append({"id": "photo-nogps", "photo_ref": "IMG_0999.jpg", "latitude": "", "longitude": "", "capture_time": ""})
    return out


def _write(path: Path, rows: list[dict[str, str]], fieldnames: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        w.writerows(rows)


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake running track + photo waypoints for demo/testing.")
    p.add_argument("--out", type=str, default="sample_data/track.csv", help="Output track CSV path")
    p.add_argument("--photos-out", type=str, default="sample_data/photos.csv", help="Output photos CSV path")
    p.add_argument("--rows", type=int, default=400, help="Number of track points")
    p.add_argument("--photos", type=int, default=4, help="Number of photos with GPS")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument("--pace", type=float, default=330.0, help="Target pace in seconds per km")
    p.add_argument(
        "--start",
        type=str,
        default="2025-03-02T00:10:00Z",
        help="Start time (UTC), e.g. '2025-03-02T00:10:00Z'",
    )
    args = p.parse_args()

    start_utc = datetime.fromisoformat(args.start.replace("Z", "+00:00")).astimezone(timezone.utc)
    course = Course("imperial_palace_loop", 35.6852, 139.7528, 800.0)

    track_rows = generate_track(
        rows=args.rows, seed=args.seed, start_utc=start_utc, course=course, pace_s_per_km=args.pace
    )
    photo_rows = generate_photos(track_rows, args.photos, args.seed)

    _write(Path(args.out), track_rows, ["longitude", "latitude", "time"])
    _write(Path(args.photos_out), photo_rows, ["id", "photo_ref", "latitude", "longitude", "capture_time"])

    print(f"Generated: {args.out} (rows={len(track_rows)}), {args.photos_out} (photos={len(photo_rows)}), seed={args.seed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
