"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0  # mean Earth radius


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in kilometers between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in kilometers.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


def bearing_deg(start: Sequence[float], end: Sequence[float]) -> float:
    """Initial great-circle bearing from `start` to `end`.

    Args:
        start: (longitude, latitude) in degrees.
        end: (longitude, latitude) in degrees.

    Returns:
        Bearing in [0, 360). 0.0 if either point has fewer than 2 ordinates.
    """

    if start is None or end is None or len(start) < 2 or len(end) < 2:
        return 0.0

    lat1 = math.radians(start[1])
    lon1 = math.radians(start[0])
    lat2 = math.radians(end[1])
    lon2 = math.radians(end[0])

    y = math.sin(lon2 - lon1) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(lon2 - lon1)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def is_inside_box(
    lon: float,
    lat: float,
    center_lon: float,
    center_lat: float,
    half_size_deg: float,
) -> bool:
    """Check whether a point lies strictly inside an axis-aligned lon/lat box.

    This is not a geodesic radius: the box shrinks east-west in meters as latitude grows.
    """

    return abs(lat - center_lat) < half_size_deg and abs(lon - center_lon) < half_size_deg
