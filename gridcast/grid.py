"""
Grid Resolver for gridcast

weather.gov addresses forecasts by an (office, x, y) grid tile, not by
coordinates. The /points endpoint translates one into the other; the answer
for a fixed coordinate never changes, so it is cached for the life of the
resolver.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from gridcast.resilience import FatalSourceError

logger = logging.getLogger(__name__)

NWS_BASE_URL = "https://api.weather.gov"
DEFAULT_USER_AGENT = "(gridcast, github.com/gridcast/gridcast)"


def nws_headers(user_agent: str = DEFAULT_USER_AGENT) -> Dict[str, str]:
    """Headers required by the weather.gov API policy."""
    return {
        "User-Agent": user_agent,
        "Accept": "application/geo+json"
    }


@dataclass(frozen=True)
class GridAddress:
    office: str
    grid_x: int
    grid_y: int

    @property
    def path(self) -> str:
        return f"{self.office}/{self.grid_x},{self.grid_y}"


class GridResolver:
    """
    Maps coordinates to weather.gov grid addresses.

    Cache is keyed by the exact coordinate string and never expires.
    """

    def __init__(self, base_url: str = NWS_BASE_URL, user_agent: str = DEFAULT_USER_AGENT):
        self.base_url = base_url.rstrip("/")
        self.headers = nws_headers(user_agent)
        self._cache: Dict[str, GridAddress] = {}

    @staticmethod
    def cache_key(latitude: float, longitude: float) -> str:
        return f"{latitude},{longitude}"

    def cached(self, latitude: float, longitude: float) -> bool:
        return self.cache_key(latitude, longitude) in self._cache

    async def resolve(self, client: httpx.AsyncClient, latitude: float, longitude: float) -> GridAddress:
        """
        Resolve coordinates to a grid address.

        Raises:
            FatalSourceError: the points lookup failed or was malformed
        """
        key = self.cache_key(latitude, longitude)
        address = self._cache.get(key)
        if address is not None:
            return address

        url = f"{self.base_url}/points/{key}"
        try:
            resp = await client.get(url, headers=self.headers)
            resp.raise_for_status()
            data = resp.json()
            props = data.get("properties") if isinstance(data, dict) else None
            if not isinstance(props, dict):
                raise FatalSourceError(f"Grid point lookup for {key} returned no properties object")
            address = GridAddress(
                office=str(props["gridId"]),
                grid_x=int(props["gridX"]),
                grid_y=int(props["gridY"])
            )
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise FatalSourceError(f"Grid point lookup failed for {key}: {e}") from e

        self._cache[key] = address
        logger.info(f"[GridResolver] Cached grid info for {key}: {address.path}")
        return address

    async def fetch_grid_data(self, client: httpx.AsyncClient, address: GridAddress) -> Dict[str, Any]:
        """
        Fetch the raw grid-properties document (all time series).

        Raises:
            FatalSourceError: the document could not be fetched or parsed
        """
        url = f"{self.base_url}/gridpoints/{address.path}"
        try:
            resp = await client.get(url, headers=self.headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise FatalSourceError(f"Grid properties fetch failed for {address.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("properties"), dict):
            raise FatalSourceError(f"Grid properties for {address.path} missing 'properties'")

        logger.info(f"[GridResolver] Retrieved grid properties for {address.path}")
        return data
