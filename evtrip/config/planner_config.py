"""
Centralized configuration for EV trip planning.

Only planning-related knobs live here to keep concerns separate from
vehicle presets, charging network data, and logging configs.
"""

PLANNER_CONFIG = {
    # Whole-trip feasibility check: route miles are inflated by this buffer
    # before adding the reserve miles
    "route_buffer_factor": 1.1,

    # Fraction of the current range used as one leg (safety margin)
    "leg_range_factor": 0.9,

    # Tolerance when deciding the destination is reachable from the frontier
    "destination_reach_tolerance": 1.05,

    # Hard cap on inserted charging stops so the planner always terminates
    "max_charging_stops": 12,

    # Most drivers charge to ~80% (less time at chargers); higher only if needed
    "default_target_soc": 80.0,
    "max_needed_soc": 95.0,

    # Reserve SOC the user may ask for is clamped to this range
    "reserve_soc_bounds": (0.0, 80.0),

    # Starting SOC derived from "miles remaining" is clamped to this range
    "start_soc_bounds": (1.0, 100.0),

    # Candidate search rings around the frontier (miles); None means unlimited
    "candidate_search_radii_miles": (50.0, 100.0, None),

    # A pinned override station is used only if this close to the frontier
    "override_max_distance_miles": 100.0,

    # Charger power floor to avoid division blow-up on malformed data
    "min_charger_power_kw": 10.0,

    # Straight-line to road distance fudge factor
    "road_distance_factor": 1.08,

    # Coarse polylines (e.g. the straight-line fallback) are split so that no
    # segment is longer than this
    "max_polyline_segment_miles": 10.0,

    # Average speed used when no routing duration is available
    "fallback_average_speed_mph": 55.0,

    # Charger discovery fan-out along the polyline
    "discovery_sample_fractions": (0.0, 0.25, 0.5, 0.75, 1.0),
    "discovery_radius_miles": 25.0,
    "discovery_max_results": 100,

    # Transport mode passed to the routing service
    "route_mode": "fastest",
}

STOP_ORDER_CONFIG = {
    # Exhaustive permutation search up to this many free (non-start) waypoints
    "max_exhaustive_waypoints": 7,

    # Cost weights: travel + dwell + wait * w + late * w + tight * w
    "wait_weight": 2.0,
    "late_penalty_weight": 10000.0,
    "tight_window_weight": 25.0,

    # Minutes of slack at or below which a window counts as "tight"
    "tight_window_minutes": 10.0,
}

__all__ = ["PLANNER_CONFIG", "STOP_ORDER_CONFIG"]
