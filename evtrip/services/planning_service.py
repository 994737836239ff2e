import asyncio
import concurrent.futures
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from evtrip.config.planner_config import PLANNER_CONFIG
from evtrip.data_processing.charger_store import ChargerCandidateStore
from evtrip.models.data_models import LatLng, Plan, PlanningRequest, RouteResult, Station
from evtrip.route_planning.plan_mutation import PlanMutationEngine
from evtrip.route_planning.route_geometry import RouteGeometry
from evtrip.services.config_service import PlannerPreferencesSchema, merged_runtime_config
from evtrip.utils.exceptions import StalePlanError
from evtrip.utils.geo import sample_indices
from evtrip.utils.logger import debug, info, warning

MODULE = "planning_service"


class PlanRunStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass
class PlanRun:
    generation: int
    status: PlanRunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    stations_found: int = 0
    used_fallback_route: bool = False
    error: Optional[str] = None


class PlanningService:
    """
    Async orchestration of route fetch, charger discovery and planning.

    Each call to ``plan_trip`` or ``replace`` starts a new generation and
    cancels the one in flight; a superseded caller gets ``None`` and its
    result is never published to ``plan``.
    """

    def __init__(self, routing_client=None, charger_client=None,
                 store: ChargerCandidateStore = None,
                 config: Dict = None, max_workers: int = 4):
        self.routing_client = routing_client
        self.charger_client = charger_client
        self.store = store if store is not None else ChargerCandidateStore()
        self.config = config or PLANNER_CONFIG
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

        self.engine: Optional[PlanMutationEngine] = None
        self.plan: Optional[Plan] = None
        self.runs: Dict[int, PlanRun] = {}

        self._generation = 0
        self._current_task: Optional[asyncio.Task] = None

    @classmethod
    def from_preferences(cls, routing_client=None, charger_client=None,
                         preferences: PlannerPreferencesSchema = None, **kwargs) -> "PlanningService":
        """Service whose planner knobs carry the saved route mode, stop budget and target SOC."""
        config = merged_runtime_config(preferences)["planner"]
        return cls(routing_client, charger_client, config=config, **kwargs)

    @property
    def generation(self) -> int:
        return self._generation

    async def _run_blocking(self, func: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    def _ensure_current(self, generation: int):
        if generation != self._generation:
            raise StalePlanError(f"Plan generation {generation} superseded by {self._generation}")

    async def _supersede(self, work: Callable[[int], Awaitable[PlanMutationEngine]]) -> Optional[Plan]:
        self._generation += 1
        generation = self._generation
        self.runs[generation] = PlanRun(generation, PlanRunStatus.RUNNING, datetime.now())

        if self._current_task is not None and not self._current_task.done():
            debug(f"Cancelling in-flight plan for generation {generation}", MODULE)
            self._current_task.cancel()

        task = asyncio.ensure_future(work(generation))
        self._current_task = task
        run = self.runs[generation]
        try:
            engine = await task
            self._ensure_current(generation)
        except (asyncio.CancelledError, StalePlanError):
            if generation == self._generation:
                raise
            run.status = PlanRunStatus.SUPERSEDED
            run.completed_at = datetime.now()
            info(f"Plan generation {generation} superseded; result dropped", MODULE)
            return None
        except Exception as e:
            run.status = PlanRunStatus.FAILED
            run.error = str(e)
            run.completed_at = datetime.now()
            raise

        run.status = PlanRunStatus.COMPLETED
        run.completed_at = datetime.now()
        self.engine = engine
        self.plan = engine.plan
        return self.plan

    # -------------------------------------------------------------------------
    # External collaborators (failures degrade, never raise)
    # -------------------------------------------------------------------------

    async def _fetch_route(self, request: PlanningRequest) -> Optional[RouteResult]:
        if self.routing_client is None:
            return None
        try:
            return await self._run_blocking(
                self.routing_client.get_route, request.origin, request.destination, self.config["route_mode"])
        except Exception as e:
            warning(f"Route fetch failed, using straight-line estimate: {e}", MODULE)
            return None

    async def _find_chargers(self, center: LatLng) -> List[Station]:
        try:
            stations = await self._run_blocking(
                self.charger_client.find_chargers, center,
                self.config["discovery_radius_miles"], self.config["discovery_max_results"])
            return list(stations or [])
        except Exception as e:
            warning(f"Charger discovery failed near ({center.lat:.3f}, {center.lng:.3f}): {e}", MODULE)
            return []

    async def discover_chargers(self, geometry: RouteGeometry) -> List[Station]:
        """Query chargers at sample points along the route concurrently."""
        if self.charger_client is None:
            return []
        indices = sample_indices(len(geometry), self.config["discovery_sample_fractions"])
        results = await asyncio.gather(*(self._find_chargers(geometry.points[i]) for i in indices))
        found = ChargerCandidateStore()
        for stations in results:
            found.merge(stations)
        return found.stations

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    async def _plan(self, request: PlanningRequest, generation: int) -> PlanMutationEngine:
        route = await self._fetch_route(request)
        geometry = RouteGeometry.build(request.origin, request.destination, route)
        run = self.runs[generation]
        run.used_fallback_route = route is None or len(route.polyline) < 2
        self._ensure_current(generation)

        discovered = await self.discover_chargers(geometry)
        self._ensure_current(generation)
        run.stations_found = len(discovered)

        self.store.merge(discovered)
        local = ChargerCandidateStore(discovered) if self.charger_client is not None else self.store
        candidates = local.filter_for_planning(request.filters, request.vehicle)
        known = {s.id: s for s in self.store}
        info(f"Planning generation {generation} with {len(candidates)} candidate chargers", MODULE)

        return await self._run_blocking(
            lambda: PlanMutationEngine(request, geometry, candidates, known, config=self.config))

    async def plan_trip(self, request: PlanningRequest) -> Optional[Plan]:
        """
        Plan a trip, superseding any plan still in flight.

        Overrides pinned on the current trip carry over when the new request
        has the same origin and destination and pins none itself.

        Returns:
            The published Plan, or None if a newer request superseded this one
        """
        request.validate()
        if (self.engine is not None and not request.overrides
                and self.engine.request.origin == request.origin
                and self.engine.request.destination == request.destination):
            request = request.with_overrides(self.engine.overrides)
        return await self._supersede(lambda generation: self._plan(request, generation))

    async def replace(self, slot_index: int, station_id) -> Optional[Plan]:
        """Pin a station to a slot and re-plan on the stored snapshot."""
        engine = self._require_engine()
        station_id = engine.validate_replacement(slot_index, station_id)
        request = engine.request.with_overrides({**engine.overrides, slot_index: station_id})

        async def work(generation: int) -> PlanMutationEngine:
            return await self._run_blocking(
                lambda: PlanMutationEngine(request, engine.geometry, engine.candidates,
                                           engine.known_stations, config=self.config))

        return await self._supersede(work)

    def _require_engine(self) -> PlanMutationEngine:
        if self.engine is None:
            raise RuntimeError("No plan yet; call plan_trip first")
        return self.engine

    def skip(self, slot_index: int) -> Plan:
        self.plan = self._require_engine().skip(slot_index)
        return self.plan

    def unskip(self, slot_index: int) -> Plan:
        self.plan = self._require_engine().unskip(slot_index)
        return self.plan

    def clear_overrides(self) -> Plan:
        self.plan = self._require_engine().clear_overrides()
        return self.plan

    def shutdown(self):
        self.executor.shutdown(wait=False)
