import logging
import re
from typing import Optional

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from evtrip.config.charging_networks_config import API_CONFIG
from evtrip.models.data_models import LatLng
from evtrip.utils.exceptions import GeocodingError

logger = logging.getLogger(__name__)

_COORDINATE_PAIR = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")

_geocoder: Optional[Nominatim] = None


def get_geocoder() -> Nominatim:
    global _geocoder
    if _geocoder is None:
        settings = API_CONFIG['nominatim']
        _geocoder = Nominatim(user_agent=settings['user_agent'], timeout=settings['timeout_seconds'])
    return _geocoder


def parse_coordinates(text: str) -> Optional[LatLng]:
    """'37.77,-122.42' -> LatLng, or None if the text is not a coordinate pair."""
    match = _COORDINATE_PAIR.match(text or "")
    if not match:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return LatLng(lat, lng)


def geocode_location(text: str, geocoder=None) -> LatLng:
    """
    Resolve free text (an address or a "lat,lng" pair) to coordinates.

    Raises:
        GeocodingError: the text is empty, unknown, or the geocoder failed
    """
    if not text or not text.strip():
        raise GeocodingError("Location text is empty")

    coords = parse_coordinates(text)
    if coords is not None:
        return coords

    geocoder = geocoder or get_geocoder()
    try:
        location = geocoder.geocode(text.strip())
    except GeopyError as e:
        logger.error(f"Geocoding failed for '{text}': {e}")
        raise GeocodingError(f"Could not geocode '{text}': {e}") from e

    if location is None:
        raise GeocodingError(f"No match for '{text}'")
    logger.info(f"Geocoded '{text}' -> ({location.latitude:.5f}, {location.longitude:.5f})")
    return LatLng(float(location.latitude), float(location.longitude))
