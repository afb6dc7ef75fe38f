# hemolink/services/geocoding_service.py
import logging
from dataclasses import dataclass
from functools import lru_cache

import httpx

from hemolink.core.config import Settings, get_settings
from hemolink.core.exceptions import GeocodingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


class NominatimGeocoder:
    """
    Resolves a postal code to coordinates through OpenStreetMap Nominatim.

    Any failure (no match, bad payload, network error) is raised as
    GeocodingError so callers report an invalid postal code.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def resolve(self, postal_code: str, country: str | None = None) -> Coordinates:
        params = {
            "postalcode": postal_code,
            "country": country or self.settings.geocoder_default_country,
            "format": "json",
            "limit": 1,
        }
        # Nominatim requires an identifying User-Agent
        headers = {"User-Agent": self.settings.geocoder_user_agent}

        try:
            response = httpx.get(
                self.settings.geocoder_base_url,
                params=params,
                headers=headers,
                timeout=self.settings.geocoder_timeout_seconds,
            )
            response.raise_for_status()
            results = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Geocoder lookup failed for postal_code={postal_code}: {exc}")
            raise GeocodingError() from exc

        if not results:
            raise GeocodingError()

        try:
            first = results[0]
            return Coordinates(latitude=float(first["lat"]), longitude=float(first["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Geocoder returned malformed result for postal_code={postal_code}")
            raise GeocodingError() from exc


@lru_cache()
def get_geocoder() -> NominatimGeocoder:
    return NominatimGeocoder()
