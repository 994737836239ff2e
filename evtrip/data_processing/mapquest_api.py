import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import requests

from evtrip.config.charging_networks_config import API_CONFIG
from evtrip.data_processing.http_client import RateLimitedClient, require_env_key
from evtrip.models.data_models import LatLng, RouteResult

logger = logging.getLogger(__name__)


def _location(point) -> str:
    p = LatLng.of(point)
    return f"{p.lat},{p.lng}"


def decode_shape_points(shape_points: Sequence[float]) -> List[LatLng]:
    """MapQuest raw shapes are a flat [lat, lng, lat, lng, ...] list."""
    return [LatLng(float(shape_points[i]), float(shape_points[i + 1]))
            for i in range(0, len(shape_points) - 1, 2)]


class MapQuestAPI(RateLimitedClient):
    """Routing and travel-time matrix calls against MapQuest Directions."""

    def __init__(self, api_key: str, session: requests.Session = None):
        settings = API_CONFIG['mapquest']
        super().__init__(api_key, settings, session)
        self.max_matrix_locations = settings['max_matrix_locations']

    def _request(self, method: str, path: str, params: Dict = None, **kwargs) -> Optional[Dict]:
        """Directions call; None on transport errors or a non-zero ``info.statuscode``."""
        data = self._fetch_json(method, path, params={**(params or {}), 'key': self.api_key}, **kwargs)
        if not isinstance(data, dict):
            return None
        info = data.get('info') or {}
        if info.get('statuscode', 0) != 0:
            logger.error(f"MapQuest status {info.get('statuscode')}: {info.get('messages', [])}")
            return None
        return data

    def get_route(self, origin, destination, mode: str = "fastest") -> Optional[RouteResult]:
        """
        Driving route between two points

        Returns:
            RouteResult with distance in miles, duration in minutes and the
            route polyline, or None when the route could not be fetched
        """
        data = self._request('GET', '/directions/v2/route', params={
            'from': _location(origin),
            'to': _location(destination),
            'routeType': mode,
            'unit': 'm',
            'fullShape': 'true',
            'shapeFormat': 'raw',
        })
        if data is None:
            return None

        route = data.get('route') or {}
        shape = (route.get('shape') or {}).get('shapePoints') or []
        polyline = tuple(decode_shape_points(shape))
        distance = float(route.get('distance') or 0.0)
        minutes = float(route.get('time') or 0.0) / 60.0
        logger.info(f"Route {distance:.1f} mi, {minutes:.0f} min, {len(polyline)} shape points")
        return RouteResult(distance_miles=distance, duration_minutes=minutes, polyline=polyline)

    def get_matrix(self, points: Sequence) -> Optional[np.ndarray]:
        """
        All-to-all drive times in minutes

        Unknown legs are ``inf``. Returns None when the request fails.
        """
        if len(points) > self.max_matrix_locations:
            raise ValueError(f"At most {self.max_matrix_locations} locations per matrix request")

        data = self._request('POST', '/directions/v2/routematrix', json={
            'locations': [_location(p) for p in points],
            'options': {'allToAll': True, 'unit': 'm'},
        })
        if data is None:
            return None

        times = data.get('time') or []
        n = len(points)
        matrix = np.full((n, n), np.inf)
        for i, row in enumerate(times[:n]):
            for j, seconds in enumerate((row or [])[:n]):
                if seconds is not None:
                    matrix[i, j] = float(seconds) / 60.0
        np.fill_diagonal(matrix, 0.0)
        return matrix


def get_api_key() -> str:
    return require_env_key('MAPQUEST_API_KEY', 'MapQuest', 'https://developer.mapquest.com/')
