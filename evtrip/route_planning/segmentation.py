"""
Route segmentation planner

Greedy forward segmentation of a route polyline into charging legs:
walk as far as the current charge safely allows, charge near that point,
repeat until the destination is in reach. Infeasible trips are returned as
plans whose destination arrival SOC is negative, never as exceptions.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from evtrip.config.planner_config import PLANNER_CONFIG
from evtrip.models.data_models import (
    Plan,
    PlanningRequest,
    PlanStop,
    Station,
    StopKind,
    VehicleProfile,
    clamp,
    summarize,
)
from evtrip.models.energy_model import (
    charge_minutes,
    range_miles,
    soc_after_consuming,
    soc_for_miles,
)
from evtrip.route_planning.route_geometry import RouteGeometry
from evtrip.utils.geo import haversine_miles
from evtrip.utils.logger import debug, info, log_plan_infeasible

MODULE = "segmentation"


def departure_target(arrive_soc: float, remaining_miles: float, profile: VehicleProfile,
                     reserve_soc: float, station_power_kw: float,
                     config: Dict = None) -> Tuple[float, float]:
    """
    SOC to leave a charger with, and minutes spent charging to get there.

    Charges to the default target (80%) unless finishing the trip with the
    reserve needs more; never below the arrival SOC, never above 100%.
    """
    config = config or PLANNER_CONFIG
    reserve_miles = range_miles(reserve_soc, profile)
    needed_miles = min(remaining_miles * config["route_buffer_factor"] + reserve_miles,
                       profile.max_range_miles)
    needed_soc = clamp(soc_for_miles(needed_miles, profile), reserve_soc, config["max_needed_soc"])
    depart_soc = clamp(max(needed_soc, config["default_target_soc"]), arrive_soc, 100.0)
    return depart_soc, charge_minutes(arrive_soc, depart_soc, profile, station_power_kw)


def rank_candidates(target, candidates: Iterable[Station]) -> List[Tuple[float, Station]]:
    """Sort by availability desc, power desc, distance asc, then station id."""
    scored = [(haversine_miles(target, s.location), s) for s in candidates]
    scored.sort(key=lambda pair: (-pair[1].availability.rank, -pair[1].max_power_kw, pair[0], pair[1].id))
    return scored


def select_station(target, candidates: Sequence[Station],
                   override: Optional[Station] = None, config: Dict = None) -> Optional[Station]:
    """Pick the charger for one stop near ``target``, widening the search ring as needed."""
    config = config or PLANNER_CONFIG
    if override is not None and haversine_miles(target, override.location) <= config["override_max_distance_miles"]:
        return override

    scored = rank_candidates(target, candidates)
    for radius in config["candidate_search_radii_miles"]:
        ring = [s for d, s in scored if radius is None or d <= radius]
        if ring:
            return ring[0]
    return None


def _walk_frontier(geometry: RouteGeometry, start: int, leg_range: float) -> Tuple[int, float]:
    """Farthest polyline index within ``leg_range`` route miles of ``start``."""
    scale = geometry.scale
    frontier, acc = start, 0.0
    for i in range(start + 1, len(geometry)):
        step = geometry.segment(i) * scale
        if acc + step > leg_range:
            break
        acc += step
        frontier = i
    if frontier == start and start < geometry.last_index:
        # Cannot reach even the next point; take it anyway so the plan advances
        frontier = start + 1
        acc = geometry.segment(frontier) * scale
    return frontier, acc


def _destination_stop(request: PlanningRequest, arrive_soc: float, leg_miles: float) -> PlanStop:
    return PlanStop(
        kind=StopKind.DESTINATION,
        location=request.destination,
        arrive_soc=arrive_soc,
        depart_soc=arrive_soc,
        name="Destination",
        leg_miles=leg_miles,
        remaining_miles=0.0,
    )


def origin_stop(request: PlanningRequest) -> PlanStop:
    return PlanStop(
        kind=StopKind.ORIGIN,
        location=request.origin,
        arrive_soc=request.start_soc,
        depart_soc=request.start_soc,
        name="Origin",
        leg_miles=0.0,
    )


def plan_route(request: PlanningRequest, geometry: RouteGeometry,
               candidates: Sequence[Station],
               known_stations: Optional[Mapping[str, Station]] = None,
               config: Dict = None) -> Plan:
    """
    Build a charging plan for ``request`` along ``geometry``.

    Args:
        request: Immutable planning inputs (vehicle, SOCs, overrides)
        geometry: Route polyline with cumulative distances
        candidates: Stations already filtered for this vehicle and user
        known_stations: Extra stations by id, consulted only to resolve
            pinned overrides that the filters removed
        config: Planner knobs, defaults to PLANNER_CONFIG

    Returns:
        Plan whose ``base_plan`` is None (it is its own baseline)
    """
    config = config or PLANNER_CONFIG
    profile = request.vehicle.validate()
    start_soc = request.start_soc
    reserve_soc = request.reserve_soc
    route_miles = geometry.distance_miles
    origin = origin_stop(request)

    lookup: Dict[str, Station] = dict(known_stations or {})
    lookup.update((s.id, s) for s in candidates)

    direct_arrival = soc_after_consuming(start_soc, route_miles, profile)
    required_miles = route_miles * config["route_buffer_factor"] + request.reserve_miles
    if range_miles(start_soc, profile) > required_miles and direct_arrival >= reserve_soc:
        info(f"Direct trip: {route_miles:.1f} mi, arriving at {direct_arrival:.1f}%", MODULE)
        return Plan(
            origin=origin,
            slots={},
            destination=_destination_stop(request, direct_arrival, route_miles),
            summary=summarize([], geometry.duration_minutes),
        )

    slots: Dict[int, PlanStop] = {}
    current_idx = 0
    current_soc = start_soc
    destination: Optional[PlanStop] = None
    reason = "stop budget exhausted"

    for slot in range(config["max_charging_stops"]):
        leg_range = range_miles(current_soc, profile) * config["leg_range_factor"]
        frontier, acc = _walk_frontier(geometry, current_idx, leg_range)
        target = geometry.points[frontier]

        to_destination = haversine_miles(target, request.destination)
        if acc + to_destination <= leg_range * config["destination_reach_tolerance"]:
            leg = geometry.remaining_miles(current_idx)
            destination = _destination_stop(request, soc_after_consuming(current_soc, leg, profile), leg)
            break

        override = None
        override_id = request.overrides.get(slot)
        if override_id is not None:
            override = lookup.get(str(override_id))
            if override is None:
                debug(f"Override {override_id} for slot {slot} is not a known station", MODULE)

        chosen = select_station(target, candidates, override, config)
        if chosen is None:
            reason = "no eligible charger"
            break

        arrive_soc = soc_after_consuming(current_soc, acc, profile)
        remaining = geometry.remaining_miles(frontier)
        depart_soc, minutes = departure_target(
            arrive_soc, remaining, profile, reserve_soc, chosen.max_power_kw, config)

        slots[slot] = PlanStop(
            kind=StopKind.CHARGER,
            location=chosen.location,
            arrive_soc=arrive_soc,
            depart_soc=depart_soc,
            charge_minutes=minutes,
            station=chosen,
            slot_index=slot,
            name=chosen.name,
            leg_miles=acc,
            remaining_miles=remaining,
        )
        debug(f"Slot {slot}: {chosen.name} ({chosen.id}) {arrive_soc:.1f}% -> {depart_soc:.1f}%, "
              f"{minutes:.0f} min", MODULE)

        current_idx = geometry.nearest_index(chosen.location, after=current_idx)
        current_soc = depart_soc

    if destination is None:
        leg = geometry.remaining_miles(current_idx)
        destination = _destination_stop(request, soc_after_consuming(current_soc, leg, profile), leg)
        if destination.arrive_soc < reserve_soc:
            log_plan_infeasible(request.origin, request.destination, destination.arrive_soc, reason,
                                extra=f"{len(slots)} charging stops planned",
                                stops=[f"{s.name} {s.arrive_soc:.0f}%->{s.depart_soc:.0f}%" for s in slots.values()])

    plan = Plan(
        origin=origin,
        slots=slots,
        destination=destination,
        summary=summarize(slots.values(), geometry.duration_minutes),
    )
    info(f"Planned {plan.summary.stop_count} charging stops, {plan.summary.charge_minutes} min charging, "
         f"arriving at {destination.arrive_soc:.1f}%", MODULE)
    return plan
