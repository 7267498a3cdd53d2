"""Waypoint proximity detection for the playback loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from flyover.geo import is_inside_box
from flyover.models import PhotoWaypoint

DEFAULT_PROXIMITY_DEG = 0.0005


@dataclass(frozen=True, slots=True)
class ProximityBox:
    """Axis-aligned lat/lon tolerance (half-size in degrees) around each waypoint."""

    half_size_deg: float = DEFAULT_PROXIMITY_DEG

    def contains(self, position: Sequence[float], waypoint: PhotoWaypoint) -> bool:
        if waypoint.location is None:
            return False
        return is_inside_box(
            position[0],
            position[1],
            waypoint.location[0],
            waypoint.location[1],
            self.half_size_deg,
        )


def check_proximity(
    position: Sequence[float],
    waypoints: Iterable[PhotoWaypoint],
    box: ProximityBox = ProximityBox(),
) -> str | None:
    """Return the id of the first unshown waypoint near `position`.

    Waypoints are scanned in insertion order; shown or unlocated ones are skipped.
    Ties go to the earliest inserted waypoint, not the closest one. This is a pure
    query: the caller marks the hit as shown.

    Args:
        position: Current (longitude, latitude).
        waypoints: Session waypoints in insertion order.
        box: Proximity tolerance.

    Returns:
        Waypoint id, or None if nothing is in range.
    """

    for wp in waypoints:
        if wp.shown or wp.location is None:
            continue
        if box.contains(position, wp):
            return wp.id
    return None
