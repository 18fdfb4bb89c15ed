"""
EPA UV Index Provider for gridcast

Fetches the hourly UV forecast from EPA Envirofacts, keyed by ZIP code.
Only the current day is covered.

Each entry looks like:
    {"ORDER": 1, "ZIP": 19104, "DATE_TIME": "DEC/20/2025 03 AM", "UV_VALUE": 0}

DATE_TIME is local time for the ZIP code.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from gridcast.resilience import PartialSourceError

logger = logging.getLogger(__name__)

HOUR_PATTERN = re.compile(r"(\d{1,2})\s*(AM|PM)", re.IGNORECASE)


class EPAUVProvider:
    """Provider for the Envirofacts UVHOURLY service."""

    BASE_URL = "https://data.epa.gov/efservice/getEnvirofactsUVHOURLY/ZIP"

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    async def fetch(self, client: httpx.AsyncClient, zipcode: str) -> List[Dict[str, Any]]:
        """
        Fetch hourly UV entries for a ZIP code.

        Raises:
            PartialSourceError: no usable (object) entries in the response
        """
        url = f"{self.base_url}/{zipcode}/JSON"

        logger.info(f"[EPAUVProvider] Fetching UV index for ZIP {zipcode}")
        resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()

        entries = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
        if not entries:
            raise PartialSourceError(f"No UV entries for ZIP {zipcode}")

        logger.info(f"[EPAUVProvider] Retrieved {len(entries)} hourly UV entries")
        return entries


def get_uv_hour(item: Dict[str, Any]) -> int:
    """
    Hour (0-23) of an EPA UV entry.

    Parsed from the "h AM/PM" part of DATE_TIME. When that is missing the
    ORDER field is used: ORDER 1 is 3 AM, so hour = ORDER + 2.
    A non-numeric ORDER is hour -1 and never matches.
    """
    date_time = item.get("DATE_TIME")
    if date_time:
        match = HOUR_PATTERN.search(str(date_time))
        if match:
            hour = int(match.group(1))
            is_pm = match.group(2).upper() == "PM"
            if is_pm and hour != 12:
                hour += 12
            if not is_pm and hour == 12:
                hour = 0
            return hour

    try:
        return int(item.get("ORDER") or 0) + 2
    except (TypeError, ValueError):
        return -1


def uv_value(item: Dict[str, Any]) -> float:
    try:
        return float(item.get("UV_VALUE") or 0)
    except (TypeError, ValueError):
        return 0.0


def uv_at_hour(uv_data: Optional[List[Dict[str, Any]]], hour: int) -> Optional[float]:
    """UV value for the entry at `hour`, or None."""
    for item in uv_data or []:
        if get_uv_hour(item) == hour:
            return uv_value(item)
    return None


def max_uv(uv_data: Optional[List[Dict[str, Any]]], from_hour: int = 0) -> float:
    """Highest UV value at or after `from_hour`; 0 when there is none."""
    values = [uv_value(item) for item in uv_data or [] if get_uv_hour(item) >= from_hour]
    return max(values, default=0.0)
