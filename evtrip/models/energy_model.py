"""
Vehicle energy model: conversions between state of charge, range and energy.

All functions are pure. SOC results are never clamped here; a negative SOC
is how an infeasible leg shows up in a plan.
"""

from typing import Iterable, Union

from evtrip.config.charging_networks_config import CONNECTOR_COMPATIBILITY
from evtrip.config.planner_config import PLANNER_CONFIG
from evtrip.models.data_models import ConnectorType, VehicleProfile


def range_miles(soc: float, profile: VehicleProfile) -> float:
    """Miles the vehicle can drive on ``soc`` percent."""
    return profile.battery_capacity_kwh * (soc / 100.0) * profile.efficiency_miles_per_kwh


def soc_for_miles(miles: float, profile: VehicleProfile) -> float:
    """SOC percent needed to drive ``miles``."""
    return miles / profile.max_range_miles * 100.0


def soc_after_consuming(start_soc: float, miles: float, profile: VehicleProfile) -> float:
    return start_soc - (miles / profile.efficiency_miles_per_kwh / profile.battery_capacity_kwh) * 100.0


def energy_to_reach_soc(from_soc: float, to_soc: float, profile: VehicleProfile) -> float:
    """kWh to add going from ``from_soc`` to ``to_soc``."""
    return profile.battery_capacity_kwh * (to_soc - from_soc) / 100.0


def effective_charge_power_kw(profile: VehicleProfile, station_power_kw: float = None) -> float:
    if station_power_kw is None:
        station_power_kw = profile.max_charge_rate_kw
    return max(PLANNER_CONFIG["min_charger_power_kw"], min(profile.max_charge_rate_kw, station_power_kw))


def charge_minutes(from_soc: float, to_soc: float, profile: VehicleProfile,
                   station_power_kw: float = None) -> float:
    kwh = energy_to_reach_soc(from_soc, to_soc, profile)
    return max(0.0, kwh / effective_charge_power_kw(profile, station_power_kw) * 60.0)


def _connector_value(connector: Union[ConnectorType, str]) -> str:
    return connector.value if isinstance(connector, ConnectorType) else str(connector)


def is_connector_compatible(vehicle_connector: Union[ConnectorType, str],
                            station_connectors: Iterable[Union[ConnectorType, str]]) -> bool:
    """NACS vehicles can use NACS, CCS or J1772 (adapters); CCS vehicles CCS or J1772."""
    usable = CONNECTOR_COMPATIBILITY.get(_connector_value(vehicle_connector), set())
    return any(_connector_value(c) in usable for c in station_connectors)
