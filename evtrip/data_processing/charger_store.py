"""
Charger candidate store

Normalizes raw provider records into Station objects, merges them by id
across discovery queries and applies the user's charger filters.
"""

import math
import zlib
from typing import Dict, Iterable, List, Optional

import pandas as pd

from evtrip.config.charging_networks_config import (
    AVAILABILITY_THRESHOLDS,
    CONNECTOR_ALIASES,
    NAME_INFERABLE_NETWORKS,
    NETWORK_ALIASES,
    STATION_DEFAULTS,
    UNAVAILABLE_STATUS_WORDS,
    UNKNOWN_NETWORK,
    UNKNOWN_NETWORK_TITLES,
)
from evtrip.models.data_models import (
    Availability,
    ChargerFilters,
    ConnectorType,
    LatLng,
    Station,
    VehicleProfile,
)
from evtrip.models.energy_model import is_connector_compatible
from evtrip.utils.exceptions import UnknownStationError
from evtrip.utils.logger import debug, info

MODULE = "charger_store"


# =============================================================================
# NORMALIZATION
# =============================================================================

def _match_alias(text: Optional[str], aliases) -> Optional[str]:
    lowered = (text or "").strip().lower()
    if not lowered:
        return None
    for needle, canonical in aliases:
        if needle in lowered:
            return canonical
    return None


def infer_network_from_name(name: Optional[str]) -> Optional[str]:
    """Brand implied by a station's display name, e.g. 'Tesla Supercharger Gilroy'."""
    brand = _match_alias(name, NETWORK_ALIASES)
    return brand if brand in NAME_INFERABLE_NETWORKS else None


def normalize_network(title: Optional[str], station_name: Optional[str] = None) -> str:
    """Map an operator title (or failing that, the station name) to a brand."""
    inferred = infer_network_from_name(station_name)
    if inferred:
        return inferred
    brand = _match_alias(title, NETWORK_ALIASES)
    if brand:
        return brand
    cleaned = (title or "").strip()
    if cleaned.lower() in UNKNOWN_NETWORK_TITLES:
        return UNKNOWN_NETWORK
    return cleaned


def normalize_connector(title: Optional[str]) -> Optional[ConnectorType]:
    value = _match_alias(title, CONNECTOR_ALIASES)
    return ConnectorType(value) if value else None


def _seeded_unit(seed: int) -> float:
    """Deterministic pseudo-random value in [0, 1)."""
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def station_seed(station_id) -> int:
    return zlib.crc32(str(station_id).encode("utf-8"))


def availability_label(available: int, stall_count: int) -> Availability:
    ratio = available / stall_count if stall_count > 0 else 0.0
    if ratio >= AVAILABILITY_THRESHOLDS["high"]:
        return Availability.HIGH
    if ratio >= AVAILABILITY_THRESHOLDS["medium"]:
        return Availability.MEDIUM
    return Availability.LOW


def simulate_availability(station_id, stall_count: int):
    """
    Simulated free stalls for providers without live data.

    Pure in (station_id, stall_count): the same station always gets the same
    answer, and the count is within [0, stall_count].

    Returns:
        (available_stalls, Availability)
    """
    stalls = int(stall_count)
    if stalls <= 0:
        return 0, Availability.LOW
    r = _seeded_unit(station_seed(station_id) * 97 + stalls * 13)
    available = max(0, min(stalls, round(r * stalls)))
    return available, availability_label(available, stalls)


def _number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _ocm_fields(raw: Dict) -> Dict:
    """Flatten an OpenChargeMap POI into the generic field names."""
    address = raw.get("AddressInfo") or {}
    operator = raw.get("OperatorInfo") or {}
    status = raw.get("StatusType") or {}
    connections = raw.get("Connections") or []
    return {
        "id": raw.get("ID"),
        "lat": address.get("Latitude"),
        "lng": address.get("Longitude"),
        "name": address.get("Title"),
        "operator": operator.get("Title"),
        "address": ", ".join(p for p in (address.get("AddressLine1"), address.get("Town")) if p),
        "connectors": [(c.get("ConnectionType") or {}).get("Title") for c in connections],
        "powers": [c.get("PowerKW") for c in connections],
        "stall_count": raw.get("NumberOfPoints"),
        "status": status.get("Title"),
    }


def _generic_fields(raw: Dict) -> Dict:
    availability = raw.get("availability") if isinstance(raw.get("availability"), dict) else {}
    connectors = raw.get("connectors") or []
    operator = raw.get("network") or raw.get("operator")
    if isinstance(operator, dict):
        operator = operator.get("name") or operator.get("title")
    return {
        "id": raw.get("id"),
        "lat": raw.get("lat", raw.get("latitude")),
        "lng": raw.get("lng", raw.get("longitude")),
        "name": raw.get("name") or raw.get("title"),
        "operator": operator,
        "address": raw.get("address", ""),
        "connectors": connectors if isinstance(connectors, (list, tuple, set, frozenset)) else [connectors],
        "powers": [raw.get("max_power_kw", raw.get("power_kw"))],
        "stall_count": raw.get("stall_count", raw.get("stalls")),
        "available": availability.get("available", raw.get("available_stalls", raw.get("available"))),
        "status": availability.get("status") or raw.get("status"),
    }


def normalize_station(raw: Dict) -> Optional[Station]:
    """
    Convert a raw provider record into a Station.

    Accepts OpenChargeMap POIs (``ID``/``AddressInfo``/``Connections``) and flat
    ``{id, lat, lng, ...}`` records. Missing power, connectors or availability
    are defaulted rather than rejected; only records without coordinates are
    dropped (returns None).
    """
    fields = _ocm_fields(raw) if "AddressInfo" in raw else _generic_fields(raw)

    lat, lng = _number(fields["lat"]), _number(fields["lng"])
    if lat is None or lng is None:
        return None

    name = fields["name"] or STATION_DEFAULTS["name"]
    network = normalize_network(fields["operator"], name)

    connectors = set()
    for title in fields["connectors"]:
        if isinstance(title, ConnectorType):
            connectors.add(title)
            continue
        connector = normalize_connector(title)
        if connector:
            connectors.add(connector)
    if not connectors:
        connectors.add(ConnectorType.NACS if network == "Tesla" else ConnectorType.CCS)

    powers = [p for p in (_number(v) for v in fields["powers"]) if p and p > 0]
    max_power_kw = max(powers) if powers else STATION_DEFAULTS["max_power_kw"]

    stall_count = int(_number(fields["stall_count"]) or 0) or STATION_DEFAULTS["stall_count"]

    station_id = fields["id"]
    if station_id is None or str(station_id) == "":
        station_id = f"{lat},{lng}"
    station_id = str(station_id)

    live = _number(fields.get("available"))
    status = str(fields.get("status") or "").lower()
    if live is not None:
        available = max(0, min(stall_count, int(round(live))))
        availability = availability_label(available, stall_count)
    elif any(word in status for word in UNAVAILABLE_STATUS_WORDS):
        available, availability = 0, Availability.LOW
    else:
        available, availability = simulate_availability(station_id, stall_count)

    return Station(
        id=station_id,
        location=LatLng(lat, lng),
        network=network,
        connectors=frozenset(connectors),
        max_power_kw=max_power_kw,
        stall_count=stall_count,
        available_stalls=available,
        availability=availability,
        name=name,
        address=fields["address"] or "",
    )


def normalize_stations(raw_records: Iterable[Dict]) -> List[Station]:
    stations = []
    for raw in raw_records:
        station = normalize_station(raw)
        if station is not None:
            stations.append(station)
    return stations


# =============================================================================
# STORE
# =============================================================================

class ChargerCandidateStore:
    """Session-lived set of discovered stations, keyed by station id."""

    def __init__(self, stations: Iterable[Station] = ()):
        self._stations: Dict[str, Station] = {}
        self.merge(stations)

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self):
        return iter(self._stations.values())

    def __contains__(self, station_id) -> bool:
        return str(station_id) in self._stations

    def merge(self, stations: Iterable[Station]) -> int:
        """Add or overwrite by id (later wins). Returns how many ids were new."""
        added = 0
        for station in stations:
            if station.id not in self._stations:
                added += 1
            self._stations[station.id] = station
        debug(f"Merged stations: {added} new, {len(self._stations)} total", MODULE)
        return added

    def get(self, station_id) -> Station:
        try:
            return self._stations[str(station_id)]
        except KeyError:
            raise UnknownStationError(str(station_id)) from None

    def find(self, station_id) -> Optional[Station]:
        return self._stations.get(str(station_id))

    def clear(self):
        self._stations.clear()

    @property
    def stations(self) -> List[Station]:
        return list(self._stations.values())

    @staticmethod
    def passes(station: Station, filters: ChargerFilters, vehicle: VehicleProfile = None) -> bool:
        if station.id in filters.excluded_station_ids:
            return False
        if filters.network != "any" and station.network != filters.network:
            return False
        if filters.hide_low_availability and station.availability is Availability.LOW:
            return False
        if station.max_power_kw < filters.min_power_kw:
            return False
        if vehicle is not None and not is_connector_compatible(vehicle.connector_type, station.connectors):
            return False
        if filters.excluded_connectors and station.connectors <= filters.excluded_connectors:
            return False
        return True

    def filter(self, filters: ChargerFilters, vehicle: VehicleProfile = None) -> List[Station]:
        return [s for s in self._stations.values() if self.passes(s, filters, vehicle)]

    def filter_for_planning(self, filters: ChargerFilters, vehicle: VehicleProfile = None) -> List[Station]:
        """Like filter(), but drops the network filter when it leaves nothing to plan with."""
        stations = self.filter(filters, vehicle)
        if stations or filters.network == "any":
            return stations
        info(f"No stations on network '{filters.network}', planning with any network", MODULE)
        return self.filter(filters.without_network(), vehicle)

    def network_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for station in self._stations.values():
            counts[station.network] = counts.get(station.network, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))

    def to_frame(self) -> pd.DataFrame:
        """Tabular export of the store, one row per station."""
        columns = ["id", "name", "network", "lat", "lng", "max_power_kw", "stall_count",
                   "available_stalls", "availability", "connectors", "address"]
        rows = [{
            "id": s.id,
            "name": s.name,
            "network": s.network,
            "lat": s.lat,
            "lng": s.lng,
            "max_power_kw": s.max_power_kw,
            "stall_count": s.stall_count,
            "available_stalls": s.available_stalls,
            "availability": s.availability.value,
            "connectors": ",".join(sorted(c.value for c in s.connectors)),
            "address": s.address,
        } for s in self._stations.values()]
        return pd.DataFrame(rows, columns=columns)

    def statistics(self) -> Dict:
        df = self.to_frame()
        if df.empty:
            return {"total_stations": 0}
        return {
            "total_stations": int(len(df)),
            "networks": int(df["network"].nunique()),
            "avg_max_power_kw": float(df["max_power_kw"].mean()),
            "fast_chargers": int((df["max_power_kw"] >= 50).sum()),
            "total_stalls": int(df["stall_count"].sum()),
            "available_stalls": int(df["available_stalls"].sum()),
            "availability": df["availability"].value_counts().to_dict(),
        }
