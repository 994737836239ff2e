import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np

from evtrip.config.planner_config import PLANNER_CONFIG, STOP_ORDER_CONFIG
from evtrip.models.data_models import LatLng
from evtrip.route_planning.stop_order import (
    OrderScore,
    ScheduledStop,
    StopWindow,
    Waypoint,
    build_schedule,
    optimize_stop_order,
    score_order,
    window_from_clock,
)
from evtrip.utils.geo import road_distance_miles
from evtrip.utils.logger import info, warning

MODULE = "stop_order"


@dataclass
class StopOrderResult:
    order: List[int]
    score: OrderScore
    schedule: List[ScheduledStop]
    baseline_score: OrderScore
    estimated_matrix: bool = False

    @property
    def minutes_saved(self) -> float:
        return self.baseline_score.score - self.score.score


def estimate_matrix(points: Sequence) -> np.ndarray:
    """Drive-time minutes from straight-line distance, for when no matrix service answers."""
    speed = PLANNER_CONFIG["fallback_average_speed_mph"]
    n = len(points)
    matrix = np.zeros((n, n))
    for i in range(n):
        for j in range(n):
            if i != j:
                matrix[i, j] = road_distance_miles(points[i], points[j]) / speed * 60.0
    return matrix


def waypoints_from_records(records: Sequence[Dict], departure: datetime = None) -> List[Waypoint]:
    """
    Build waypoints from plain dicts.

    Each record may carry ``name``, ``duration_minutes`` and either a window in
    minutes after departure (``window_start``/``window_end`` as numbers) or
    clock times ("HH:MM") resolved against ``departure``.
    """
    waypoints = []
    for record in records:
        start, end = record.get("window_start"), record.get("window_end")
        window = None
        if isinstance(start, str) and isinstance(end, str):
            if departure is None:
                raise ValueError("Clock-time windows need a departure time")
            window = window_from_clock(start, end, departure)
        elif start is not None and end is not None:
            window = StopWindow(float(start), float(end))
        waypoints.append(Waypoint(
            name=record.get("name", ""),
            duration_minutes=float(record.get("duration_minutes", 0) or 0),
            window=window,
        ))
    return waypoints


class StopOrderService:
    """Fetches a travel-time matrix and runs the stop-order optimizer on it."""

    def __init__(self, matrix_client=None, config: Dict = None):
        self.matrix_client = matrix_client
        self.config = config or STOP_ORDER_CONFIG

    async def _fetch_matrix(self, points: Sequence[LatLng]) -> Optional[np.ndarray]:
        if self.matrix_client is None:
            return None
        try:
            loop = asyncio.get_running_loop()
            matrix = await loop.run_in_executor(None, self.matrix_client.get_matrix, list(points))
        except Exception as e:
            warning(f"Travel-time matrix failed, estimating from distance: {e}", MODULE)
            return None
        return None if matrix is None else np.asarray(matrix, dtype=float)

    async def optimize(self, points: Sequence, waypoints: Sequence[Waypoint] = None) -> StopOrderResult:
        points = [LatLng.of(p) for p in points]
        if waypoints is not None and len(waypoints) != len(points):
            raise ValueError(f"Got {len(waypoints)} waypoints for {len(points)} points")

        matrix = await self._fetch_matrix(points)
        estimated = matrix is None
        if estimated:
            matrix = estimate_matrix(points)

        loop = asyncio.get_running_loop()
        order = await loop.run_in_executor(None, optimize_stop_order, matrix, waypoints, self.config)
        identity = list(range(len(points)))
        result = StopOrderResult(
            order=order,
            score=score_order(order, matrix, waypoints, self.config),
            schedule=build_schedule(order, matrix, waypoints, self.config),
            baseline_score=score_order(identity, matrix, waypoints, self.config),
            estimated_matrix=estimated,
        )
        info(f"Stop order {order}: score {result.score.score:.1f} "
             f"({result.minutes_saved:.1f} better than as entered)", MODULE)
        return result
