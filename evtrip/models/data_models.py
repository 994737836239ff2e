from __future__ import annotations

from dataclasses import dataclass, field, replace, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from evtrip.config.planner_config import PLANNER_CONFIG
from evtrip.config.vehicle_presets import VEHICLE_PRESETS
from evtrip.utils.exceptions import InvalidPlanningRequestError, InvalidVehicleProfileError


class ConnectorType(Enum):
    NACS = "NACS"
    CCS = "CCS"
    CHADEMO = "CHAdeMO"
    J1772 = "J1772"


class Availability(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 2, "medium": 1, "low": 0}[self.value]


class StopKind(Enum):
    ORIGIN = "origin"
    CHARGER = "charger"
    DESTINATION = "destination"


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    @classmethod
    def of(cls, point) -> "LatLng":
        if isinstance(point, LatLng):
            return point
        if isinstance(point, dict):
            return cls(float(point["lat"]), float(point["lng"]))
        lat, lng = point
        return cls(float(lat), float(lng))


@dataclass(frozen=True)
class VehicleProfile:
    battery_capacity_kwh: float
    efficiency_miles_per_kwh: float
    connector_type: ConnectorType
    max_charge_rate_kw: float
    name: str = ""

    def validate(self) -> "VehicleProfile":
        """Reject non-positive fields; never clamp to a misleading default."""
        for field_name in ("battery_capacity_kwh", "efficiency_miles_per_kwh", "max_charge_rate_kw"):
            value = getattr(self, field_name)
            if value is None or not value > 0:
                raise InvalidVehicleProfileError(f"{field_name} must be > 0, got {value!r}")
        if not isinstance(self.connector_type, ConnectorType):
            raise InvalidVehicleProfileError(f"Unsupported connector type {self.connector_type!r}")
        return self

    @property
    def max_range_miles(self) -> float:
        return self.battery_capacity_kwh * self.efficiency_miles_per_kwh

    @classmethod
    def from_preset(cls, preset_id: str) -> "VehicleProfile":
        try:
            specs = VEHICLE_PRESETS[preset_id]
        except KeyError:
            raise InvalidVehicleProfileError(f"Unknown vehicle preset '{preset_id}'") from None
        return cls(
            battery_capacity_kwh=float(specs["battery_capacity_kwh"]),
            efficiency_miles_per_kwh=float(specs["efficiency_miles_per_kwh"]),
            connector_type=ConnectorType(specs["connector_type"]),
            max_charge_rate_kw=float(specs["max_charge_rate_kw"]),
            name=specs.get("name", preset_id),
        )


@dataclass(frozen=True)
class Station:
    id: str
    location: LatLng
    network: str
    connectors: FrozenSet[ConnectorType]
    max_power_kw: float
    stall_count: int
    available_stalls: int
    availability: Availability
    name: str = "Charging Station"
    address: str = ""

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lng(self) -> float:
        return self.location.lng


@dataclass(frozen=True)
class ChargerFilters:
    """User-facing station filters. ``network='any'`` disables the network filter."""
    network: str = "any"
    hide_low_availability: bool = False
    min_power_kw: float = 0.0
    excluded_connectors: FrozenSet[ConnectorType] = frozenset()
    excluded_station_ids: FrozenSet[str] = frozenset()

    def without_network(self) -> "ChargerFilters":
        return replace(self, network="any")


@dataclass(frozen=True)
class RouteResult:
    distance_miles: float
    duration_minutes: float
    polyline: Tuple[LatLng, ...] = ()


@dataclass(frozen=True)
class PlanStop:
    kind: StopKind
    location: LatLng
    arrive_soc: float
    depart_soc: float
    charge_minutes: float = 0.0
    station: Optional[Station] = None
    slot_index: Optional[int] = None
    name: str = ""
    # Miles driven from the previous stop, and route miles left after this stop
    leg_miles: Optional[float] = None
    remaining_miles: Optional[float] = None
    skipped: bool = False

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lng(self) -> float:
        return self.location.lng


@dataclass(frozen=True)
class PlanSummary:
    drive_minutes: float
    charge_minutes: float
    stop_count: int


@dataclass(frozen=True)
class Plan:
    """
    A trip plan. Charger stops live in ``slots`` keyed by their stable slot
    index; ``stops`` is the ordered view origin -> chargers -> destination.
    ``base_plan`` is the unmodified planner output that mutations recompute from.
    """
    origin: PlanStop
    slots: Mapping[int, PlanStop]
    destination: PlanStop
    summary: PlanSummary
    base_plan: Optional["Plan"] = None

    def __post_init__(self):
        object.__setattr__(self, "slots", dict(sorted(self.slots.items())))

    @property
    def stops(self) -> List[PlanStop]:
        return [self.origin, *self.slots.values(), self.destination]

    @property
    def charger_stops(self) -> List[PlanStop]:
        return list(self.slots.values())

    @property
    def baseline(self) -> "Plan":
        return self.base_plan if self.base_plan is not None else self

    def stop_for_slot(self, slot_index: int) -> Optional[PlanStop]:
        return self.slots.get(slot_index)

    @property
    def is_feasible(self) -> bool:
        return all(stop.arrive_soc >= 0 for stop in self.stops[1:])

    def meets_reserve(self, reserve_soc: float) -> bool:
        return self.is_feasible and self.destination.arrive_soc >= reserve_soc

    def to_dict(self) -> Dict[str, Any]:
        def stop_dict(stop: PlanStop) -> Dict[str, Any]:
            return {
                "kind": stop.kind.value,
                "name": stop.name,
                "lat": stop.lat,
                "lng": stop.lng,
                "slot_index": stop.slot_index,
                "arrive_soc": stop.arrive_soc,
                "depart_soc": stop.depart_soc,
                "charge_minutes": stop.charge_minutes,
                "skipped": stop.skipped,
                "station_id": stop.station.id if stop.station else None,
            }

        return {
            "stops": [stop_dict(s) for s in self.stops],
            "summary": asdict(self.summary),
            "feasible": self.is_feasible,
        }


def summarize(stops: Iterable[PlanStop], drive_minutes: float) -> PlanSummary:
    """Charge minutes and the count of stops that actually charge."""
    stops = list(stops)
    return PlanSummary(
        drive_minutes=round(drive_minutes),
        charge_minutes=round(sum(s.charge_minutes for s in stops)),
        stop_count=sum(1 for s in stops if s.kind is StopKind.CHARGER and s.charge_minutes > 0),
    )


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


@dataclass(frozen=True)
class PlanningRequest:
    """Immutable snapshot of every input one planning run depends on."""
    origin: LatLng
    destination: LatLng
    vehicle: VehicleProfile
    start_soc: float
    reserve_soc: float = 15.0
    filters: ChargerFilters = field(default_factory=ChargerFilters)
    overrides: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "origin", LatLng.of(self.origin))
        object.__setattr__(self, "destination", LatLng.of(self.destination))
        lo, hi = PLANNER_CONFIG["reserve_soc_bounds"]
        object.__setattr__(self, "reserve_soc", clamp(float(self.reserve_soc), lo, hi))
        object.__setattr__(self, "overrides", dict(self.overrides))

    def validate(self) -> "PlanningRequest":
        self.vehicle.validate()
        if not 0 < self.start_soc <= 100:
            raise InvalidPlanningRequestError(f"start_soc must be in (0, 100], got {self.start_soc}")
        for label, point in (("origin", self.origin), ("destination", self.destination)):
            if not (-90 <= point.lat <= 90 and -180 <= point.lng <= 180):
                raise InvalidPlanningRequestError(f"{label} coordinates out of range: {point}")
        return self

    def with_overrides(self, overrides: Mapping[int, str]) -> "PlanningRequest":
        return replace(self, overrides=dict(overrides))

    def with_vehicle(self, vehicle: VehicleProfile, start_soc: float = None) -> "PlanningRequest":
        return replace(self, vehicle=vehicle, start_soc=self.start_soc if start_soc is None else start_soc)

    @property
    def reserve_miles(self) -> float:
        return self.vehicle.max_range_miles * (self.reserve_soc / 100.0)

    @classmethod
    def from_miles_remaining(cls, origin, destination, vehicle: VehicleProfile,
                             miles_remaining: float, **kwargs) -> "PlanningRequest":
        """Build a request from a 'miles remaining' reading instead of SOC."""
        vehicle.validate()
        lo, hi = PLANNER_CONFIG["start_soc_bounds"]
        soc = clamp(miles_remaining / vehicle.max_range_miles * 100.0, lo, hi)
        return cls(origin=origin, destination=destination, vehicle=vehicle, start_soc=soc, **kwargs)
