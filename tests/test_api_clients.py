import json
from types import SimpleNamespace

import numpy as np
import pytest
import requests
from geopy.exc import GeocoderTimedOut

from evtrip.data_processing import mapquest_api, openchargemap_api
from evtrip.data_processing.geocoding import geocode_location, parse_coordinates
from evtrip.data_processing.mapquest_api import MapQuestAPI, decode_shape_points
from evtrip.data_processing.openchargemap_api import OpenChargeMapAPI
from evtrip.models.data_models import ConnectorType, LatLng
from evtrip.utils.exceptions import GeocodingError


class FakeResponse:
    def __init__(self, payload=None, status_code=200, bad_json=False):
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json
        self.text = "" if payload is None else json.dumps(payload)

    def json(self):
        if self.bad_json:
            raise json.JSONDecodeError("Expecting value", "<html>", 0)
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)


def ocm_client(session):
    client = OpenChargeMapAPI("test-key", session=session)
    client.min_request_interval = 0
    return client


def mapquest_client(session):
    client = MapQuestAPI("test-key", session=session)
    client.min_request_interval = 0
    return client


OCM_POI = [
    {
        "ID": 1,
        "AddressInfo": {"Title": "Walmart Gilroy", "Latitude": 37.0, "Longitude": -121.5},
        "OperatorInfo": {"Title": "Electrify America"},
        "NumberOfPoints": 6,
        "Connections": [{"ConnectionType": {"Title": "CCS (Type 1)"}, "PowerKW": 350}],
    },
    {"ID": 2, "AddressInfo": {"Title": "Nowhere"}},
]


def test_find_chargers_normalizes_and_drops_bad_records():
    session = FakeSession(FakeResponse(OCM_POI))
    stations = ocm_client(session).find_chargers(LatLng(37.0, -121.5), radius_miles=25, max_results=500)

    assert [s.id for s in stations] == ["1"]
    assert stations[0].network == "Electrify America"
    assert stations[0].connectors == frozenset({ConnectorType.CCS})

    _, url, kwargs = session.calls[0]
    assert url.endswith("/poi/")
    assert kwargs["params"]["distanceunit"] == "Miles"
    assert kwargs["params"]["maxresults"] == 100
    assert session.headers["User-Agent"] == "EV-Trip-Planner/1.0"


@pytest.mark.parametrize("session", [
    FakeSession(FakeResponse({"error": "bad key"}, status_code=403)),
    FakeSession(FakeResponse(bad_json=True)),
    FakeSession(error=requests.exceptions.ConnectionError("offline")),
])
def test_find_chargers_failure_is_empty(session):
    assert ocm_client(session).find_chargers((37.0, -121.5)) == []


def test_get_station_by_id():
    assert ocm_client(FakeSession(FakeResponse(OCM_POI[:1]))).get_station_by_id(1).id == "1"
    assert ocm_client(FakeSession(FakeResponse([]))).get_station_by_id(1) is None


def test_decode_shape_points():
    assert decode_shape_points([1.0, 2.0, 3.0, 4.0]) == [LatLng(1.0, 2.0), LatLng(3.0, 4.0)]
    assert decode_shape_points([]) == []


def test_get_route_parses_mapquest_payload():
    payload = {
        "info": {"statuscode": 0},
        "route": {"distance": 81.5, "time": 5400, "shape": {"shapePoints": [37.0, -122.0, 37.5, -121.5]}},
    }
    session = FakeSession(FakeResponse(payload))

    route = mapquest_client(session).get_route((37.0, -122.0), (37.5, -121.5))

    assert route.distance_miles == 81.5
    assert route.duration_minutes == 90
    assert route.polyline == (LatLng(37.0, -122.0), LatLng(37.5, -121.5))
    method, url, kwargs = session.calls[0]
    assert (method, url.endswith("/directions/v2/route")) == ("GET", True)
    assert kwargs["params"]["from"] == "37.0,-122.0"
    assert kwargs["params"]["key"] == "test-key"


def test_get_route_failures_return_none():
    bad_status = {"info": {"statuscode": 402, "messages": ["We are unable to route"]}}
    assert mapquest_client(FakeSession(FakeResponse(bad_status))).get_route((0, 0), (1, 1)) is None
    assert mapquest_client(FakeSession(FakeResponse(status_code=500))).get_route((0, 0), (1, 1)) is None
    offline = FakeSession(error=requests.exceptions.Timeout("slow"))
    assert mapquest_client(offline).get_route((0, 0), (1, 1)) is None


def test_get_matrix_converts_seconds_and_marks_unknown_legs():
    payload = {"info": {"statuscode": 0}, "time": [[0, 600, 1200], [600, 0, None], [1200, 900, 0]]}
    session = FakeSession(FakeResponse(payload))

    matrix = mapquest_client(session).get_matrix([(0, 0), (0, 1), (0, 2)])

    assert matrix[0, 1] == 10
    assert matrix[2, 0] == 20
    assert np.isinf(matrix[1, 2])
    assert session.calls[0][0] == "POST"
    assert session.calls[0][2]["json"]["options"]["allToAll"] is True


def test_get_matrix_rejects_too_many_points():
    with pytest.raises(ValueError):
        mapquest_client(FakeSession()).get_matrix([(0, i * 0.01) for i in range(26)])


@pytest.mark.parametrize("module,env_var", [
    (openchargemap_api, "OPENCHARGEMAP_API_KEY"),
    (mapquest_api, "MAPQUEST_API_KEY"),
])
def test_api_key_from_environment(monkeypatch, module, env_var):
    monkeypatch.setenv(env_var, "abc123")
    assert module.get_api_key() == "abc123"
    monkeypatch.delenv(env_var)
    with pytest.raises(ValueError):
        module.get_api_key()


class FakeGeocoder:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.queries = []

    def geocode(self, text):
        self.queries.append(text)
        if self.error is not None:
            raise self.error
        return self.result


def test_geocode_address():
    geocoder = FakeGeocoder(SimpleNamespace(latitude=40.7128, longitude=-74.006))
    assert geocode_location("  New York, NY ", geocoder) == LatLng(40.7128, -74.006)
    assert geocoder.queries == ["New York, NY"]


def test_geocode_coordinate_text_skips_lookup():
    geocoder = FakeGeocoder()
    assert geocode_location("37.77, -122.42", geocoder) == LatLng(37.77, -122.42)
    assert geocoder.queries == []
    assert parse_coordinates("95, 10") is None
    assert parse_coordinates("Main St 5") is None


@pytest.mark.parametrize("text,geocoder", [
    ("", FakeGeocoder()),
    ("   ", FakeGeocoder()),
    ("Atlantis", FakeGeocoder(None)),
    ("Boston", FakeGeocoder(error=GeocoderTimedOut("timed out"))),
])
def test_geocode_failures(text, geocoder):
    with pytest.raises(GeocodingError):
        geocode_location(text, geocoder)
