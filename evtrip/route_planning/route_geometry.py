from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from evtrip.config.planner_config import PLANNER_CONFIG
from evtrip.models.data_models import LatLng, RouteResult
from evtrip.utils.geo import cumulative_miles, haversine_miles, road_distance_miles


def densify(points: Sequence[LatLng], max_segment_miles: float) -> List[LatLng]:
    """Insert evenly spaced points so no segment exceeds ``max_segment_miles``."""
    if len(points) < 2:
        return list(points)
    out = [points[0]]
    for a, b in zip(points, points[1:]):
        pieces = int(math.ceil(haversine_miles(a, b) / max_segment_miles - 1e-9))
        for k in range(1, pieces):
            t = k / pieces
            out.append(LatLng(a.lat + (b.lat - a.lat) * t, a.lng + (b.lng - a.lng) * t))
        out.append(b)
    return out


@dataclass(frozen=True)
class RouteGeometry:
    """
    Polyline plus precomputed cumulative haversine miles.

    ``scale`` converts polyline miles to route miles so that the remaining
    distance agrees with the routing service's total.
    """
    points: Tuple[LatLng, ...]
    cumulative: np.ndarray
    distance_miles: float
    duration_minutes: float

    @classmethod
    def build(cls, origin: LatLng, destination: LatLng,
              route: Optional[RouteResult] = None) -> "RouteGeometry":
        """Build from a routing result, falling back to a straight origin->destination line."""
        points: Sequence[LatLng] = route.polyline if route is not None else ()
        if len(points) < 2:
            points = (origin, destination)
            distance = route.distance_miles if route is not None and route.distance_miles else None
            if not distance:
                distance = road_distance_miles(origin, destination)
        else:
            distance = route.distance_miles or None

        points = densify([LatLng.of(p) for p in points], PLANNER_CONFIG["max_polyline_segment_miles"])
        cumulative = cumulative_miles(points)
        polyline_miles = float(cumulative[-1])
        if not distance:
            distance = polyline_miles

        if route is not None and route.duration_minutes:
            duration = float(route.duration_minutes)
        else:
            duration = distance / PLANNER_CONFIG["fallback_average_speed_mph"] * 60.0

        return cls(tuple(points), cumulative, float(distance), duration)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def last_index(self) -> int:
        return len(self.points) - 1

    @property
    def polyline_miles(self) -> float:
        return float(self.cumulative[-1])

    @property
    def scale(self) -> float:
        if self.polyline_miles <= 0:
            return 1.0
        return self.distance_miles / self.polyline_miles

    def segment(self, index: int) -> float:
        """Polyline miles from point ``index - 1`` to ``index``."""
        return float(self.cumulative[index] - self.cumulative[index - 1])

    def remaining_miles(self, index: int) -> float:
        """Route miles from point ``index`` to the end."""
        return max(0.0, (self.polyline_miles - float(self.cumulative[index])) * self.scale)

    def nearest_index(self, point, after: int = -1) -> int:
        """Index of the polyline point nearest ``point`` among indices > ``after``."""
        start = min(after + 1, self.last_index)
        best_idx, best_dist = start, float("inf")
        for idx in range(start, len(self.points)):
            d = haversine_miles(self.points[idx], point)
            if d < best_dist:
                best_idx, best_dist = idx, d
        return best_idx
