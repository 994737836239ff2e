"""
Stop-order optimizer for multi-stop trips

Finds the visiting order of waypoints (the first one fixed as the start)
that minimizes travel + dwell + weighted wait, lateness and tight-window
penalties against a pairwise travel-time matrix.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import permutations
from typing import Dict, List, Optional, Sequence

import numpy as np

from evtrip.config.planner_config import STOP_ORDER_CONFIG
from evtrip.utils.logger import debug

MODULE = "stop_order"


@dataclass(frozen=True)
class StopWindow:
    """Arrival window in minutes after departure."""
    start: float
    end: float


@dataclass(frozen=True)
class Waypoint:
    name: str = ""
    duration_minutes: float = 0.0
    window: Optional[StopWindow] = None


@dataclass(frozen=True)
class OrderScore:
    score: float
    travel_minutes: float
    dwell_minutes: float
    wait_minutes: float
    late_minutes: float
    tight_count: int


@dataclass(frozen=True)
class ScheduledStop:
    index: int
    arrival: float
    service_start: float
    departure: float
    wait: float = 0.0
    late_by: float = 0.0
    buffer: Optional[float] = None
    window_status: str = "no-window"


def parse_time_to_minutes(text: str) -> Optional[int]:
    """'HH:MM' -> minutes after midnight, or None if malformed."""
    parts = (text or "").strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def window_from_clock(start: str, end: str, departure: datetime) -> Optional[StopWindow]:
    """Convert an 'HH:MM'-'HH:MM' window on the departure date to minutes after departure."""
    start_min, end_min = parse_time_to_minutes(start), parse_time_to_minutes(end)
    if start_min is None or end_min is None:
        return None
    midnight = departure.replace(hour=0, minute=0, second=0, microsecond=0)
    offset = (departure - midnight) / timedelta(minutes=1)
    return StopWindow(start=start_min - offset, end=end_min - offset)


def _as_matrix(matrix) -> np.ndarray:
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ValueError(f"Travel-time matrix must be square, got shape {m.shape}")
    return m


def build_schedule(order: Sequence[int], matrix, waypoints: Sequence[Waypoint] = None,
                   config: Dict = None) -> List[ScheduledStop]:
    """Simulate driving ``order`` from time 0 and report per-stop timing."""
    config = config or STOP_ORDER_CONFIG
    m = _as_matrix(matrix)
    waypoints = waypoints or [Waypoint() for _ in range(len(m))]

    schedule: List[ScheduledStop] = []
    clock = 0.0
    for pos, idx in enumerate(order):
        if pos > 0:
            clock += m[order[pos - 1], idx]
        stop = waypoints[idx]
        arrival = service_start = clock
        wait = late_by = 0.0
        buffer = None
        status = "no-window"

        if stop.window is not None:
            status = "on-time"
            if arrival < stop.window.start:
                wait = stop.window.start - arrival
                service_start = stop.window.start
                status = "early-wait"
            if service_start > stop.window.end:
                late_by = service_start - stop.window.end
                status = "late"
            else:
                buffer = stop.window.end - service_start
                if status != "early-wait" and buffer <= config["tight_window_minutes"]:
                    status = "tight"

        clock = service_start + stop.duration_minutes
        schedule.append(ScheduledStop(idx, arrival, service_start, clock, wait, late_by, buffer, status))
    return schedule


def score_order(order: Sequence[int], matrix, waypoints: Sequence[Waypoint] = None,
                config: Dict = None) -> OrderScore:
    config = config or STOP_ORDER_CONFIG
    m = _as_matrix(matrix)
    waypoints = waypoints or [Waypoint() for _ in range(len(m))]
    schedule = build_schedule(order, m, waypoints, config)

    travel = float(sum(m[a, b] for a, b in zip(order, order[1:])))
    dwell = float(sum(waypoints[i].duration_minutes for i in order))
    wait = sum(s.wait for s in schedule)
    late = sum(s.late_by for s in schedule)
    tight = sum(1 for s in schedule if s.buffer is not None and s.buffer <= config["tight_window_minutes"])

    score = (travel + dwell + wait * config["wait_weight"]
             + late * config["late_penalty_weight"] + tight * config["tight_window_weight"])
    return OrderScore(score, travel, dwell, wait, late, tight)


def _exhaustive(n: int, m: np.ndarray, waypoints, config) -> List[int]:
    rest = list(range(1, n))
    best_order, best_score, best_late = rest, float("inf"), float("inf")
    checked = 0
    for perm in permutations(rest):
        checked += 1
        s = score_order([0, *perm], m, waypoints, config)
        # Any on-time order beats every late one; among late ones, least late first
        if s.late_minutes == 0:
            if best_late != 0 or s.score < best_score:
                best_order, best_score, best_late = list(perm), s.score, 0.0
        elif best_late != 0:
            if s.late_minutes < best_late or (s.late_minutes == best_late and s.score < best_score):
                best_order, best_score, best_late = list(perm), s.score, s.late_minutes
    debug(f"Checked {checked} permutations; best score {best_score:.1f}", MODULE)
    return [0, *best_order]


def _greedy(n: int, m: np.ndarray, waypoints, config) -> List[int]:
    order = [0]
    remaining = list(range(1, n))
    while remaining:
        best_next, best_score = remaining[0], float("inf")
        for candidate in remaining:
            s = score_order([*order, candidate], m, waypoints, config).score
            if s < best_score:
                best_next, best_score = candidate, s
        order.append(best_next)
        remaining.remove(best_next)
    return order


def optimize_stop_order(matrix, waypoints: Sequence[Waypoint] = None,
                        config: Dict = None) -> List[int]:
    """
    Best visiting order as indices into the matrix, always starting at 0.

    Up to ``max_exhaustive_waypoints`` free waypoints every permutation is
    scored; beyond that a greedy walk picks the best-scoring next stop.
    """
    config = config or STOP_ORDER_CONFIG
    m = _as_matrix(matrix)
    n = len(m)
    if waypoints is not None and len(waypoints) != n:
        raise ValueError(f"Got {len(waypoints)} waypoints for a {n}x{n} matrix")
    waypoints = list(waypoints) if waypoints is not None else [Waypoint() for _ in range(n)]
    if n <= 2:
        return list(range(n))
    if n - 1 <= config["max_exhaustive_waypoints"]:
        return _exhaustive(n, m, waypoints, config)
    return _greedy(n, m, waypoints, config)
