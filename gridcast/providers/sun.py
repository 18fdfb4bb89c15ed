"""
Sunrise/Sunset Provider for gridcast

Fetches today's sunrise and sunset instants from sunrise-sunset.org.
No API key or identification header is required.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx

from gridcast.resilience import PartialSourceError
from gridcast.timeseries import parse_instant

logger = logging.getLogger(__name__)


class SunriseSunsetProvider:
    """Provider for api.sunrise-sunset.org."""

    BASE_URL = "https://api.sunrise-sunset.org/json"

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = base_url or self.BASE_URL

    async def fetch(self, client: httpx.AsyncClient, latitude: float, longitude: float) -> Tuple[datetime, datetime]:
        """
        Fetch sunrise/sunset for today at the coordinate.

        Returns:
            (sunrise, sunset) as aware UTC datetimes

        Raises:
            PartialSourceError: status is not OK or the instants are unusable
        """
        params = {"lat": latitude, "lng": longitude, "formatted": 0}

        logger.info(f"[SunriseSunsetProvider] Fetching sun times for {latitude},{longitude}")
        resp = await client.get(self.base_url, params=params)
        resp.raise_for_status()
        data = resp.json()

        if not isinstance(data, dict) or data.get("status") != "OK":
            status = data.get("status") if isinstance(data, dict) else None
            raise PartialSourceError(f"sunrise-sunset status {status!r}")

        return sun_times(data.get("results"))


def sun_times(results: Dict[str, Any]) -> Tuple[datetime, datetime]:
    """
    Decode (sunrise, sunset) from a formatted=0 results object.

    Raises:
        PartialSourceError: results missing or instants unparseable
    """
    if not isinstance(results, dict):
        raise PartialSourceError("sunrise-sunset response has no results object")
    try:
        return parse_instant(results.get("sunrise")), parse_instant(results.get("sunset"))
    except ValueError as e:
        raise PartialSourceError(f"Unparseable sunrise/sunset: {e}") from e
