"""Geographic helpers for route summaries."""

from __future__ import annotations

import math
from typing import Iterable

from fieldwork.core.models import Coordinates, RoutePoint

# Earth radius in meters (for Haversine).
_EARTH_R = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_R * math.asin(math.sqrt(a))


def path_length_km(points: Iterable[RoutePoint]) -> float:
    """Length of the polyline through ``points`` in kilometers, in capture order."""
    total = 0.0
    prev: RoutePoint | None = None
    for p in points:
        if prev is not None:
            total += haversine_m(prev.lat, prev.lng, p.lat, p.lng)
        prev = p
    return round(total / 1000, 3)


def valid_coordinates(coords: Coordinates) -> bool:
    return -90.0 <= coords.lat <= 90.0 and -180.0 <= coords.lng <= 180.0
