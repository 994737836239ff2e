"""
Plan mutation engine

Skip and replace operations on a planned trip, addressed by slot index.
Skips are recomputed locally from the base plan; replacing a stop pins a
station to a slot and re-runs the segmentation planner.
"""

from dataclasses import replace as dc_replace
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from evtrip.models.data_models import Plan, PlanningRequest, Station, summarize
from evtrip.models.energy_model import soc_after_consuming
from evtrip.route_planning.route_geometry import RouteGeometry
from evtrip.route_planning.segmentation import departure_target, origin_stop, plan_route
from evtrip.utils.exceptions import UnknownSlotError, UnknownStationError
from evtrip.utils.geo import road_distance_miles
from evtrip.utils.logger import debug, info

MODULE = "plan_mutation"


def recompute_after_skips(base_plan: Plan, skipped: Iterable[int],
                          request: PlanningRequest, config: Dict = None) -> Plan:
    """
    Re-derive the SOC chain of ``base_plan`` with some charging slots skipped.

    The origin SOC is re-seeded from ``request``. A skipped charger passes its
    arrival SOC straight through with no charging; other chargers recompute
    their departure target from the propagated SOC. Arrival SOC may go
    negative. Always starts from the unmodified baseline, so repeated or
    reordered skips give the same result.
    """
    base = base_plan.baseline
    skipped = set(skipped)
    profile = request.vehicle
    origin = origin_stop(request)

    slots = {}
    prev = origin
    for slot, stop in base.slots.items():
        leg = stop.leg_miles
        if leg is None:
            leg = road_distance_miles(prev.location, stop.location)
        arrive_soc = soc_after_consuming(prev.depart_soc, leg, profile)

        if slot in skipped:
            updated = dc_replace(stop, arrive_soc=arrive_soc, depart_soc=arrive_soc,
                                 charge_minutes=0.0, skipped=True)
        else:
            remaining = stop.remaining_miles
            if remaining is None:
                remaining = road_distance_miles(stop.location, base.destination.location)
            power = stop.station.max_power_kw if stop.station is not None else None
            depart_soc, minutes = departure_target(
                arrive_soc, remaining, profile, request.reserve_soc, power, config)
            updated = dc_replace(stop, arrive_soc=arrive_soc, depart_soc=depart_soc,
                                 charge_minutes=minutes, skipped=False)
        slots[slot] = updated
        prev = updated

    leg = base.destination.leg_miles
    if leg is None:
        leg = road_distance_miles(prev.location, base.destination.location)
    arrive_soc = soc_after_consuming(prev.depart_soc, leg, profile)
    destination = dc_replace(base.destination, arrive_soc=arrive_soc, depart_soc=arrive_soc)

    return Plan(
        origin=origin,
        slots=slots,
        destination=destination,
        summary=summarize(slots.values(), base.summary.drive_minutes),
        base_plan=base,
    )


class PlanMutationEngine:
    """
    Owns the live plan for one trip and applies user edits to it.

    The engine keeps the planning snapshot (request, route geometry, filtered
    candidates) so that replacing a stop can re-plan without new fetches.
    Overrides persist across re-plans until cleared.
    """

    def __init__(self, request: PlanningRequest, geometry: RouteGeometry,
                 candidates: Sequence[Station],
                 known_stations: Optional[Mapping[str, Station]] = None,
                 base_plan: Optional[Plan] = None,
                 config: Dict = None):
        self.request = request
        self.geometry = geometry
        self.candidates = list(candidates)
        self.known_stations: Dict[str, Station] = dict(known_stations or {})
        self.known_stations.update((s.id, s) for s in self.candidates)
        self.config = config
        self._overrides: Dict[int, str] = dict(request.overrides)
        self._skipped = set()

        self.base_plan = base_plan.baseline if base_plan is not None else self._run_planner()
        self.plan = self.base_plan

    @property
    def skipped(self) -> FrozenSet[int]:
        return frozenset(self._skipped)

    @property
    def overrides(self) -> Dict[int, str]:
        return dict(self._overrides)

    def _run_planner(self) -> Plan:
        self.request = self.request.with_overrides(self._overrides)
        return plan_route(self.request, self.geometry, self.candidates,
                          known_stations=self.known_stations, config=self.config)

    def _replan(self) -> Plan:
        self._skipped.clear()
        self.base_plan = self._run_planner()
        self.plan = self.base_plan
        return self.plan

    def _recompute(self) -> Plan:
        self.plan = recompute_after_skips(self.base_plan, self._skipped, self.request, self.config)
        return self.plan

    def _check_slot(self, slot_index: int):
        if slot_index not in self.base_plan.slots:
            raise UnknownSlotError(slot_index)

    def validate_replacement(self, slot_index: int, station_id) -> str:
        """Raise unless ``slot_index`` is planned and ``station_id`` is known."""
        self._check_slot(slot_index)
        station_id = str(station_id)
        if station_id not in self.known_stations:
            raise UnknownStationError(station_id)
        return station_id

    def skip(self, slot_index: int) -> Plan:
        """Skip the charging stop at ``slot_index``; skipping twice is a no-op."""
        self._check_slot(slot_index)
        if slot_index in self._skipped:
            return self.plan
        self._skipped.add(slot_index)
        debug(f"Skipping slot {slot_index}; skipped={sorted(self._skipped)}", MODULE)
        return self._recompute()

    def unskip(self, slot_index: int) -> Plan:
        self._check_slot(slot_index)
        if slot_index not in self._skipped:
            return self.plan
        self._skipped.discard(slot_index)
        debug(f"Restoring slot {slot_index}; skipped={sorted(self._skipped)}", MODULE)
        return self._recompute()

    def replace(self, slot_index: int, station_id: str) -> Plan:
        """Pin ``station_id`` to ``slot_index`` and re-plan the whole trip."""
        station_id = self.validate_replacement(slot_index, station_id)
        self._overrides[slot_index] = station_id
        info(f"Replacing slot {slot_index} with station {station_id}", MODULE)
        plan = self._replan()
        chosen = plan.stop_for_slot(slot_index)
        if chosen is None or chosen.station is None or chosen.station.id != station_id:
            info(f"Station {station_id} too far from the slot {slot_index} frontier; override ignored", MODULE)
        return plan

    def clear_override(self, slot_index: int) -> Plan:
        if self._overrides.pop(slot_index, None) is None:
            return self.plan
        return self._replan()

    def clear_overrides(self) -> Plan:
        if not self._overrides:
            return self.plan
        self._overrides.clear()
        return self._replan()

    def reset(self) -> Plan:
        """Drop every skip and override and return the freshly planned trip."""
        self._overrides.clear()
        return self._replan()

    def update_request(self, request: PlanningRequest,
                       candidates: Optional[Sequence[Station]] = None) -> Plan:
        """Re-plan with new vehicle or charge inputs, keeping pinned overrides."""
        self.request = request
        if candidates is not None:
            self.candidates = list(candidates)
            self.known_stations.update((s.id, s) for s in self.candidates)
        return self._replan()
