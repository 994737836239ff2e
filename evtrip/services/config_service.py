from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, confloat, conint, field_validator

from evtrip.config.planner_config import PLANNER_CONFIG, STOP_ORDER_CONFIG
from evtrip.config.vehicle_presets import DEFAULT_VEHICLE_PRESET, VEHICLE_PRESETS
from evtrip.models.data_models import (
    ChargerFilters,
    ConnectorType,
    LatLng,
    PlanningRequest,
    VehicleProfile,
)
from evtrip.utils.exceptions import InvalidVehicleProfileError


PLANNER_OVERRIDES_PATH = Path("config/planner_overrides.yaml")


class VehicleProfileSchema(BaseModel):
    preset: Optional[str] = DEFAULT_VEHICLE_PRESET
    battery_capacity_kwh: Optional[confloat(gt=0, le=300)] = None
    efficiency_miles_per_kwh: Optional[confloat(gt=0, le=10)] = None
    connector_type: Optional[str] = None
    max_charge_rate_kw: Optional[confloat(gt=0, le=1000)] = None

    @field_validator("preset")
    @classmethod
    def _known_preset(cls, v):
        if v is not None and v not in VEHICLE_PRESETS:
            raise ValueError(f"unknown vehicle preset '{v}'")
        return v

    @field_validator("connector_type")
    @classmethod
    def _known_connector(cls, v):
        if v is not None and v not in {c.value for c in ConnectorType}:
            raise ValueError(f"unknown connector type '{v}'")
        return v

    def to_profile(self) -> VehicleProfile:
        """Preset values, with any explicitly set field taking precedence."""
        specs: Dict[str, Any] = dict(VEHICLE_PRESETS[self.preset]) if self.preset else {}
        specs.update({k: v for k, v in self.model_dump(exclude={"preset"}).items() if v is not None})
        missing = [k for k in ("battery_capacity_kwh", "efficiency_miles_per_kwh",
                               "connector_type", "max_charge_rate_kw") if specs.get(k) is None]
        if missing:
            raise InvalidVehicleProfileError(f"Vehicle profile is missing {', '.join(missing)}")
        return VehicleProfile(
            battery_capacity_kwh=float(specs["battery_capacity_kwh"]),
            efficiency_miles_per_kwh=float(specs["efficiency_miles_per_kwh"]),
            connector_type=ConnectorType(specs["connector_type"]),
            max_charge_rate_kw=float(specs["max_charge_rate_kw"]),
            name=specs.get("name", self.preset or "Custom"),
        ).validate()


class ChargerFilterSchema(BaseModel):
    network: str = "any"
    hide_low_availability: bool = False
    min_power_kw: confloat(ge=0, le=1000) = 0
    excluded_connectors: List[str] = Field(default_factory=list)
    excluded_station_ids: List[str] = Field(default_factory=list)

    @field_validator("excluded_connectors")
    @classmethod
    def _known_connectors(cls, v):
        known = {c.value for c in ConnectorType}
        unknown = [c for c in v if c not in known]
        if unknown:
            raise ValueError(f"unknown connector types {unknown}")
        return v

    def to_filters(self) -> ChargerFilters:
        return ChargerFilters(
            network=self.network or "any",
            hide_low_availability=self.hide_low_availability,
            min_power_kw=float(self.min_power_kw),
            excluded_connectors=frozenset(ConnectorType(c) for c in self.excluded_connectors),
            excluded_station_ids=frozenset(str(s) for s in self.excluded_station_ids),
        )


class PlannerPreferencesSchema(BaseModel):
    vehicle: VehicleProfileSchema = Field(default_factory=VehicleProfileSchema)
    filters: ChargerFilterSchema = Field(default_factory=ChargerFilterSchema)
    # "soc": start_soc is a percentage; "miles": miles_remaining on the dash
    charge_input_mode: Literal["soc", "miles"] = "soc"
    start_soc: confloat(gt=0, le=100) = 80
    miles_remaining: Optional[confloat(ge=0)] = None
    reserve_soc: confloat(ge=0, le=100) = 15
    route_mode: Literal["fastest", "shortest"] = "fastest"
    max_charging_stops: Optional[conint(ge=1, le=30)] = None
    default_target_soc: Optional[confloat(ge=50, le=100)] = None


def load_overrides(path: Path = None) -> PlannerPreferencesSchema:
    path = Path(path) if path is not None else PLANNER_OVERRIDES_PATH
    if path.exists():
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return PlannerPreferencesSchema(**data)
    return PlannerPreferencesSchema()


def save_overrides(preferences: PlannerPreferencesSchema, path: Path = None) -> None:
    path = Path(path) if path is not None else PLANNER_OVERRIDES_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(preferences.model_dump(), sort_keys=False), encoding="utf-8")


def merged_runtime_config(preferences: PlannerPreferencesSchema = None) -> Dict[str, Any]:
    prefs = preferences if preferences is not None else load_overrides()

    planner = dict(PLANNER_CONFIG)
    planner["route_mode"] = prefs.route_mode
    if prefs.max_charging_stops is not None:
        planner["max_charging_stops"] = prefs.max_charging_stops
    if prefs.default_target_soc is not None:
        planner["default_target_soc"] = float(prefs.default_target_soc)

    return {
        "planner": planner,
        "stop_order": dict(STOP_ORDER_CONFIG),
        "vehicle": prefs.vehicle.model_dump(),
        "filters": prefs.filters.model_dump(),
        "charge_input_mode": prefs.charge_input_mode,
    }


def build_planning_request(origin, destination,
                           preferences: PlannerPreferencesSchema = None) -> PlanningRequest:
    """Turn validated preferences into an immutable, validated PlanningRequest."""
    prefs = preferences if preferences is not None else load_overrides()
    vehicle = prefs.vehicle.to_profile()
    filters = prefs.filters.to_filters()

    if prefs.charge_input_mode == "miles" and prefs.miles_remaining is not None:
        request = PlanningRequest.from_miles_remaining(
            LatLng.of(origin), LatLng.of(destination), vehicle, prefs.miles_remaining,
            reserve_soc=prefs.reserve_soc, filters=filters,
        )
    else:
        request = PlanningRequest(
            origin=LatLng.of(origin),
            destination=LatLng.of(destination),
            vehicle=vehicle,
            start_soc=float(prefs.start_soc),
            reserve_soc=float(prefs.reserve_soc),
            filters=filters,
        )
    return request.validate()
