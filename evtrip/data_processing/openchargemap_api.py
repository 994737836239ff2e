import logging
from typing import Dict, List, Optional

import requests

from evtrip.config.charging_networks_config import API_CONFIG
from evtrip.data_processing.charger_store import normalize_station, normalize_stations
from evtrip.data_processing.http_client import RateLimitedClient, require_env_key
from evtrip.models.data_models import LatLng, Station

logger = logging.getLogger(__name__)


class OpenChargeMapAPI(RateLimitedClient):
    """Charger discovery against the OpenChargeMap POI endpoint."""

    def __init__(self, api_key: str, session: requests.Session = None):
        settings = API_CONFIG['openchargemap']
        super().__init__(api_key, settings, session)
        self.max_results = settings['max_results_per_request']

    def _poi(self, **query) -> Optional[List[Dict]]:
        params = {'output': 'json', 'compact': 'false', 'verbose': 'false', 'key': self.api_key}
        params.update({k: v for k, v in query.items() if v is not None})
        records = self._fetch_json('GET', '/poi/', params=params)
        return records if isinstance(records, list) else None

    def find_nearby_stations(self, latitude: float, longitude: float,
                             distance_miles: float = 25, max_results: int = 50,
                             country_code: str = None) -> List[Dict]:
        """
        Raw POI records around a point

        Args:
            latitude, longitude: Search center
            distance_miles: Search radius in miles
            max_results: Capped at the API's per-request maximum
            country_code: Optional ISO filter such as 'US'

        Returns:
            OpenChargeMap POI dictionaries; empty if the request failed
        """
        records = self._poi(
            latitude=latitude,
            longitude=longitude,
            distance=distance_miles,
            distanceunit='Miles',
            maxresults=min(int(max_results), self.max_results),
            countrycode=country_code,
        )
        if records is None:
            return []
        logger.info(f"{len(records)} POIs within {distance_miles:g} mi of ({latitude:.4f}, {longitude:.4f})")
        return records

    def find_chargers(self, center, radius_miles: float = 25,
                      max_results: int = 100) -> List[Station]:
        """Normalized stations within ``radius_miles`` of ``center``."""
        point = LatLng.of(center)
        raw = self.find_nearby_stations(point.lat, point.lng, radius_miles, max_results)
        stations = normalize_stations(raw)
        if len(stations) < len(raw):
            logger.warning(f"Dropped {len(raw) - len(stations)} POIs without coordinates")
        return stations

    def get_station_by_id(self, station_id) -> Optional[Station]:
        records = self._poi(chargepointid=station_id)
        return normalize_station(records[0]) if records else None


def get_api_key() -> str:
    return require_env_key('OPENCHARGEMAP_API_KEY', 'OpenChargeMap',
                           'https://openchargemap.org/site/develop/api')
