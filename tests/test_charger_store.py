import pytest

from evtrip.data_processing.charger_store import (
    ChargerCandidateStore,
    availability_label,
    normalize_connector,
    normalize_network,
    normalize_station,
    simulate_availability,
)
from evtrip.models.data_models import Availability, ChargerFilters, ConnectorType
from evtrip.utils.exceptions import UnknownStationError

from planner_fixtures import ccs_vehicle, make_station


OCM_RECORD = {
    "ID": 12345,
    "AddressInfo": {
        "Title": "Tesla Supercharger Gilroy",
        "Latitude": 37.0,
        "Longitude": -121.55,
        "AddressLine1": "681 Leavesley Rd",
        "Town": "Gilroy",
    },
    "OperatorInfo": {"Title": "Tesla Motors (Worldwide)"},
    "NumberOfPoints": 8,
    "StatusType": {"Title": "Operational"},
    "Connections": [
        {"ConnectionType": {"Title": "NACS / Tesla Supercharger"}, "PowerKW": 250},
        {"ConnectionType": {"Title": "NACS / Tesla Supercharger"}, "PowerKW": 150},
    ],
}


@pytest.mark.parametrize("title,name,expected", [
    ("Tesla Motors (Worldwide)", None, "Tesla"),
    ("Electrify America", None, "Electrify America"),
    ("ChargePoint", None, "ChargePoint"),
    ("EVgo Services", None, "EVgo"),
    ("Greenlots", None, "Shell Recharge"),
    ("Blink Network", None, "Blink"),
    ("(Unknown Operator)", "EVgo Walmart", "EVgo"),
    ("Some Local Utility", None, "Some Local Utility"),
    ("", None, "Unknown"),
    (None, None, "Unknown"),
])
def test_normalize_network(title, name, expected):
    assert normalize_network(title, name) == expected


@pytest.mark.parametrize("title,expected", [
    ("CCS (Type 1)", ConnectorType.CCS),
    ("CHAdeMO", ConnectorType.CHADEMO),
    ("Type 1 (J1772)", ConnectorType.J1772),
    ("NACS / Tesla Supercharger", ConnectorType.NACS),
    ("Type 2 (Socket Only)", None),
    (None, None),
])
def test_normalize_connector(title, expected):
    assert normalize_connector(title) == expected


def test_normalize_openchargemap_record():
    station = normalize_station(OCM_RECORD)
    assert station.id == "12345"
    assert station.network == "Tesla"
    assert station.connectors == frozenset({ConnectorType.NACS})
    assert station.max_power_kw == 250
    assert station.stall_count == 8
    assert station.address == "681 Leavesley Rd, Gilroy"
    assert 0 <= station.available_stalls <= 8


def test_normalize_fills_defaults():
    station = normalize_station({"id": "abc", "lat": 40.0, "lng": -100.0})
    assert station.max_power_kw == 50
    assert station.stall_count == 4
    assert station.connectors == frozenset({ConnectorType.CCS})
    assert station.network == "Unknown"
    assert station.name == "Charging Station"

    tesla = normalize_station({"id": "t1", "lat": 40.0, "lng": -100.0, "network": "Tesla"})
    assert tesla.connectors == frozenset({ConnectorType.NACS})


def test_normalize_drops_records_without_coordinates():
    assert normalize_station({"id": "nowhere"}) is None
    assert normalize_station({"id": "bad", "lat": "n/a", "lng": 3}) is None


def test_live_counts_beat_simulation():
    station = normalize_station({"id": "x", "lat": 1, "lng": 2, "stall_count": 10,
                                 "availability": {"available": 7}})
    assert station.available_stalls == 7
    assert station.availability is Availability.HIGH

    overfull = normalize_station({"id": "y", "lat": 1, "lng": 2, "stall_count": 4, "available": 12})
    assert overfull.available_stalls == 4


def test_closed_status_is_low_availability():
    station = normalize_station({"id": "z", "lat": 1, "lng": 2, "status": "Temporarily Closed"})
    assert station.availability is Availability.LOW
    assert station.available_stalls == 0


def test_simulated_availability_is_deterministic_and_bounded():
    for idx in range(300):
        stalls = 1 + idx % 12
        available, label = simulate_availability(f"station-{idx}", stalls)
        assert (available, label) == simulate_availability(f"station-{idx}", stalls)
        assert 0 <= available <= stalls
        ratio = available / stalls
        if ratio >= 0.6:
            assert label is Availability.HIGH
        elif ratio >= 0.3:
            assert label is Availability.MEDIUM
        else:
            assert label is Availability.LOW

    for idx in range(50):
        assert simulate_availability(f"st-{idx}", 0) == (0, Availability.LOW)
        assert simulate_availability(f"st-{idx}", -2) == (0, Availability.LOW)


@pytest.mark.parametrize("available,stalls,expected", [
    (6, 10, Availability.HIGH),
    (3, 10, Availability.MEDIUM),
    (2, 10, Availability.LOW),
    (0, 0, Availability.LOW),
])
def test_availability_thresholds(available, stalls, expected):
    assert availability_label(available, stalls) is expected


def test_merge_by_id_later_wins():
    store = ChargerCandidateStore()
    first = make_station("s1", 10, power_kw=50)
    assert store.merge([first, make_station("s2", 20)]) == 2

    updated = make_station("s1", 10, power_kw=350)
    assert store.merge([updated, make_station("s3", 30)]) == 1

    assert len(store) == 3
    assert store.get("s1").max_power_kw == 350
    assert sorted(s.id for s in store) == ["s1", "s2", "s3"]


def test_get_unknown_station_raises():
    with pytest.raises(UnknownStationError):
        ChargerCandidateStore().get("missing")


@pytest.fixture
def mixed_store():
    return ChargerCandidateStore([
        make_station("ea-fast", 10, power_kw=350),
        make_station("ea-low", 20, availability=Availability.LOW),
        make_station("cp-slow", 30, power_kw=7, network="ChargePoint", connectors=(ConnectorType.J1772,)),
        make_station("tesla", 40, network="Tesla", connectors=(ConnectorType.NACS,)),
        make_station("chademo", 50, network="EVgo", connectors=(ConnectorType.CHADEMO,)),
    ])


def test_filter_by_vehicle_connector(mixed_store):
    ids = {s.id for s in mixed_store.filter(ChargerFilters(), ccs_vehicle())}
    assert ids == {"ea-fast", "ea-low", "cp-slow"}


def test_filter_options(mixed_store):
    vehicle = ccs_vehicle()
    assert {s.id for s in mixed_store.filter(ChargerFilters(hide_low_availability=True), vehicle)} == {"ea-fast", "cp-slow"}
    assert {s.id for s in mixed_store.filter(ChargerFilters(min_power_kw=200), vehicle)} == {"ea-fast"}
    assert {s.id for s in mixed_store.filter(ChargerFilters(network="ChargePoint"), vehicle)} == {"cp-slow"}
    assert {s.id for s in mixed_store.filter(
        ChargerFilters(excluded_connectors=frozenset({ConnectorType.J1772})), vehicle)} == {"ea-fast", "ea-low"}
    assert {s.id for s in mixed_store.filter(
        ChargerFilters(excluded_station_ids=frozenset({"ea-low"})), vehicle)} == {"ea-fast", "cp-slow"}


def test_filter_for_planning_drops_empty_network_filter(mixed_store):
    vehicle = ccs_vehicle()
    assert mixed_store.filter(ChargerFilters(network="Blink"), vehicle) == []
    fallback = mixed_store.filter_for_planning(ChargerFilters(network="Blink"), vehicle)
    assert {s.id for s in fallback} == {"ea-fast", "ea-low", "cp-slow"}


def test_network_counts_and_frame(mixed_store):
    assert mixed_store.network_counts() == {"Electrify America": 2, "ChargePoint": 1, "EVgo": 1, "Tesla": 1}

    df = mixed_store.to_frame()
    assert len(df) == 5
    assert set(df["availability"]) <= {"high", "medium", "low"}

    stats = mixed_store.statistics()
    assert stats["total_stations"] == 5
    assert stats["networks"] == 4
    assert ChargerCandidateStore().statistics() == {"total_stations": 0}


def test_find_and_clear(mixed_store):
    assert mixed_store.find("tesla").network == "Tesla"
    assert mixed_store.find("missing") is None
    assert "tesla" in mixed_store
    mixed_store.clear()
    assert len(mixed_store) == 0
