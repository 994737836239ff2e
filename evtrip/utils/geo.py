from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from evtrip.config.planner_config import PLANNER_CONFIG

EARTH_RADIUS_MILES = 3958.7613


def _lat_lng(point) -> Tuple[float, float]:
    """Accept LatLng-like objects, (lat, lng) tuples, or {'lat','lng'} dicts."""
    if isinstance(point, dict):
        return float(point["lat"]), float(point["lng"])
    if hasattr(point, "lat") and hasattr(point, "lng"):
        return float(point.lat), float(point.lng)
    lat, lng = point
    return float(lat), float(lng)


def haversine_miles(a, b) -> float:
    """Great-circle distance in miles between two points."""
    lat1, lon1 = _lat_lng(a)
    lat2, lon2 = _lat_lng(b)
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    s = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(s), math.sqrt(1 - s))


def road_distance_miles(a, b, factor: float = None) -> float:
    """Estimate driving distance from straight-line distance."""
    if factor is None:
        factor = PLANNER_CONFIG["road_distance_factor"]
    return haversine_miles(a, b) * factor


def segment_miles(points: Sequence) -> np.ndarray:
    """Haversine length of each consecutive segment of a polyline."""
    if len(points) < 2:
        return np.zeros(0)
    coords = np.radians(np.array([_lat_lng(p) for p in points], dtype=float))
    lat1, lon1 = coords[:-1, 0], coords[:-1, 1]
    lat2, lon2 = coords[1:, 0], coords[1:, 1]
    a = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def cumulative_miles(points: Sequence) -> np.ndarray:
    """Distance from the first point to every point along the polyline."""
    if len(points) == 0:
        return np.zeros(0)
    return np.concatenate(([0.0], np.cumsum(segment_miles(points))))


def sample_indices(n_points: int, fractions: Iterable[float]) -> List[int]:
    """Unique polyline indices at the given fractions of its length, in order."""
    if n_points <= 0:
        return []
    out: List[int] = []
    for frac in fractions:
        idx = min(n_points - 1, max(0, int(math.floor(n_points * float(frac)))))
        if idx not in out:
            out.append(idx)
    return out
