import asyncio
import threading
import time
from datetime import datetime
from types import SimpleNamespace

import numpy as np
import pytest

from evtrip.data_processing.charger_store import ChargerCandidateStore
from evtrip.data_processing.openchargemap_api import OpenChargeMapAPI
from evtrip.models.data_models import Availability, PlanningRequest
from evtrip.services.config_service import PlannerPreferencesSchema
from evtrip.services.planning_service import PlanningService, PlanRunStatus
from evtrip.services.stop_order_service import (
    StopOrderService,
    estimate_matrix,
    waypoints_from_records,
)
from evtrip.route_planning.stop_order import StopWindow
from evtrip.utils.exceptions import UnknownStationError

from planner_fixtures import MILES_PER_DEGREE, ccs_vehicle, line_route, make_station, point_at


class FakeRouter:
    def __init__(self, slow_beyond_miles=None, delay=0.3, fail=False):
        self.slow_beyond_miles = slow_beyond_miles
        self.delay = delay
        self.fail = fail
        self.calls = 0
        self.modes = []

    def get_route(self, origin, destination, mode):
        self.calls += 1
        self.modes.append(mode)
        if self.fail:
            raise ConnectionError("routing service down")
        total = round(destination.lng * MILES_PER_DEGREE)
        if self.slow_beyond_miles is not None and total > self.slow_beyond_miles:
            time.sleep(self.delay)
        return line_route(total)


class FakeChargers:
    def __init__(self, stations, fail=False):
        self.stations = stations
        self.fail = fail
        self.centers = []
        self._lock = threading.Lock()

    def find_chargers(self, center, radius_miles, max_results):
        with self._lock:
            self.centers.append(center)
        if self.fail:
            raise ConnectionError("charger service down")
        return list(self.stations)


def scenario_request(total_miles=400, **kwargs):
    return PlanningRequest(origin=point_at(0), destination=point_at(total_miles),
                           vehicle=ccs_vehicle(75, 3.0, max_kw=150), start_soc=20, reserve_soc=10, **kwargs)


def scenario_stations():
    return [make_station(f"s{m}", m) for m in (100, 220, 330)]


@pytest.fixture
def service():
    store = ChargerCandidateStore([make_station("pinned", 60, power_kw=50, availability=Availability.LOW)])
    svc = PlanningService(FakeRouter(), FakeChargers(scenario_stations()), store=store)
    yield svc
    svc.shutdown()


def test_plan_trip_discovers_and_plans(service):
    plan = asyncio.run(service.plan_trip(scenario_request()))

    assert [s.station.id for s in plan.charger_stops] == ["s100", "s330"]
    assert len(service.charger_client.centers) == 5
    assert service.plan is plan
    assert {s.id for s in service.store} == {"pinned", "s100", "s220", "s330"}

    run = service.runs[1]
    assert run.status is PlanRunStatus.COMPLETED
    assert run.stations_found == 3
    assert not run.used_fallback_route


def test_route_failure_falls_back_to_straight_line():
    svc = PlanningService(FakeRouter(fail=True), FakeChargers(scenario_stations()))
    try:
        plan = asyncio.run(svc.plan_trip(scenario_request()))
    finally:
        svc.shutdown()

    assert plan is not None
    assert svc.runs[1].used_fallback_route
    assert plan.summary.drive_minutes == round(432 / 55 * 60)


def test_discovery_failure_yields_infeasible_plan():
    svc = PlanningService(FakeRouter(), FakeChargers([], fail=True))
    try:
        plan = asyncio.run(svc.plan_trip(scenario_request()))
    finally:
        svc.shutdown()

    assert plan.slots == {}
    assert plan.destination.arrive_soc < 0
    assert svc.runs[1].stations_found == 0


def test_without_charger_client_plans_from_store():
    store = ChargerCandidateStore(scenario_stations())
    svc = PlanningService(FakeRouter(), None, store=store)
    try:
        plan = asyncio.run(svc.plan_trip(scenario_request()))
    finally:
        svc.shutdown()

    assert [s.station.id for s in plan.charger_stops] == ["s100", "s330"]


def test_saved_preferences_drive_the_planner():
    prefs = PlannerPreferencesSchema(route_mode="shortest", max_charging_stops=1, default_target_soc=100)
    router = FakeRouter()
    svc = PlanningService.from_preferences(router, FakeChargers(scenario_stations()), prefs)
    try:
        plan = asyncio.run(svc.plan_trip(scenario_request()))
    finally:
        svc.shutdown()

    assert router.modes == ["shortest"]
    assert [s.station.id for s in plan.charger_stops] == ["s100"]
    assert plan.charger_stops[0].depart_soc == 100.0
    assert not plan.is_feasible


class StampingSession:
    def __init__(self):
        self.headers = {}
        self.stamps = []
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.stamps.append(time.time())
        return SimpleNamespace(status_code=200, text="[]", json=lambda: [])


def test_discovery_fan_out_keeps_request_spacing():
    session = StampingSession()
    client = OpenChargeMapAPI("test-key", session=session)
    client.min_request_interval = 0.1
    svc = PlanningService(FakeRouter(), client)
    try:
        asyncio.run(svc.plan_trip(scenario_request()))
    finally:
        svc.shutdown()

    stamps = sorted(session.stamps)
    assert len(stamps) == 5
    gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
    assert min(gaps) >= 0.08


def test_newer_request_supersedes_older():
    svc = PlanningService(FakeRouter(slow_beyond_miles=350), FakeChargers(scenario_stations()))

    async def run_both():
        first = asyncio.ensure_future(svc.plan_trip(scenario_request(400)))
        await asyncio.sleep(0.05)
        second = await svc.plan_trip(scenario_request(300))
        return await first, second

    try:
        first, second = asyncio.run(run_both())
    finally:
        svc.shutdown()

    assert first is None
    assert second is not None
    assert svc.plan is second
    assert svc.plan.destination.location == point_at(300)
    assert svc.runs[1].status is PlanRunStatus.SUPERSEDED
    assert svc.runs[2].status is PlanRunStatus.COMPLETED


def test_replace_skip_and_carry_over(service):
    async def flow():
        await service.plan_trip(scenario_request())
        replaced = await service.replace(0, "pinned")
        replanned = await service.plan_trip(scenario_request())
        return replaced, replanned

    replaced, replanned = asyncio.run(flow())

    assert replaced.slots[0].station.id == "pinned"
    # Same origin and destination: the pinned station carries over
    assert replanned.slots[0].station.id == "pinned"

    skipped = service.skip(1)
    assert skipped.slots[1].skipped
    assert service.plan is skipped
    assert not service.unskip(1).slots[1].skipped

    cleared = service.clear_overrides()
    assert cleared.slots[0].station.id == "s100"


def test_replace_unknown_station_raises(service):
    asyncio.run(service.plan_trip(scenario_request()))
    with pytest.raises(UnknownStationError):
        asyncio.run(service.replace(0, "does-not-exist"))


def test_edits_need_a_plan():
    svc = PlanningService()
    with pytest.raises(RuntimeError):
        svc.skip(0)
    svc.shutdown()


class FakeMatrix:
    def __init__(self, matrix=None, fail=False):
        self.matrix = matrix
        self.fail = fail

    def get_matrix(self, points):
        if self.fail:
            raise TimeoutError("matrix timed out")
        return self.matrix


def test_stop_order_uses_fetched_matrix():
    matrix = np.array([[0, 50, 10], [50, 0, 45], [10, 45, 0]], dtype=float)
    points = [point_at(0), point_at(50), point_at(10)]

    result = asyncio.run(StopOrderService(FakeMatrix(matrix)).optimize(points))

    assert result.order == [0, 2, 1]
    assert not result.estimated_matrix
    assert result.score.travel_minutes == 55
    assert result.minutes_saved == pytest.approx(95 - 55)
    assert [s.index for s in result.schedule] == [0, 2, 1]


def test_stop_order_estimates_when_matrix_fails():
    points = [point_at(0), point_at(50), point_at(10)]
    result = asyncio.run(StopOrderService(FakeMatrix(fail=True)).optimize(points))
    assert result.estimated_matrix
    assert result.order == [0, 2, 1]


def test_stop_order_rejects_mismatched_waypoints():
    points = [point_at(0), point_at(10)]
    with pytest.raises(ValueError):
        asyncio.run(StopOrderService().optimize(points, waypoints_from_records([{}])))


def test_estimate_matrix_is_symmetric_drive_minutes():
    m = estimate_matrix([point_at(0), point_at(55)])
    # 59.4 road miles at 55 mph
    assert m[0, 1] == pytest.approx(64.8)
    assert m[0, 1] == pytest.approx(m[1, 0])
    assert m[0, 0] == 0


def test_waypoints_from_records():
    departure = datetime(2024, 5, 1, 8, 0)
    waypoints = waypoints_from_records([
        {"name": "home"},
        {"name": "school", "duration_minutes": 10, "window_start": "08:30", "window_end": "09:00"},
        {"name": "store", "duration_minutes": "15", "window_start": 60, "window_end": 120},
    ], departure)

    assert waypoints[0].window is None
    assert waypoints[1].window == StopWindow(30, 60)
    assert waypoints[2].duration_minutes == 15
    assert waypoints[2].window == StopWindow(60, 120)

    with pytest.raises(ValueError):
        waypoints_from_records([{"window_start": "08:30", "window_end": "09:00"}])
