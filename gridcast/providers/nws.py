"""
National Weather Service (NWS) Provider for gridcast

Fetches the secondary weather.gov documents for a resolved grid address:
- 'forecast' endpoint: 12-hour named Periods ("Tonight", "Monday") that
  carry the human-curated High/Low and a short text description
- 'forecast/hourly' endpoint: one Period per hour with text conditions
- 'alerts/active' endpoint: active alerts for the coordinate

The raw grid properties (numeric time series) are fetched by GridResolver.
Each fetch returns decoded values or raises; the orchestrator turns a
failure into an empty branch.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict

import httpx

from gridcast.grid import DEFAULT_USER_AGENT, NWS_BASE_URL, GridAddress, nws_headers
from gridcast.resilience import PartialSourceError
from gridcast.timeseries import parse_instant

logger = logging.getLogger(__name__)


class NWSPeriod(TypedDict, total=False):
    name: str
    startTime: str
    endTime: str
    isDaytime: bool
    temperature: int
    temperatureUnit: str
    shortForecast: str


class Alert(TypedDict):
    sender_name: str
    event: str
    start: Optional[int]
    end: Optional[int]
    description: str
    tags: List[str]


@dataclass(frozen=True)
class ForecastPeriod:
    name: str
    start: datetime
    end: datetime
    is_daytime: bool
    short_forecast: str
    temperature: Optional[float]
    temperature_unit: str = "F"

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


def _text(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) and value else default


def _raw_periods(document: Any) -> List[Any]:
    """The properties.periods list of a forecast document, or raise."""
    props = document.get("properties") if isinstance(document, dict) else None
    periods = props.get("periods") if isinstance(props, dict) else None
    if not isinstance(periods, list):
        raise PartialSourceError("Forecast document has no properties.periods list")
    return periods


def decode_periods(document: Optional[Dict[str, Any]]) -> List[ForecastPeriod]:
    """
    Decode forecast or hourly-forecast Periods in document order.

    Periods that are not objects or lack a parseable start/end are skipped.
    An absent or malformed document decodes to no periods.
    """
    try:
        raw_periods: List[NWSPeriod] = _raw_periods(document)
    except PartialSourceError:
        return []

    periods: List[ForecastPeriod] = []
    for p in raw_periods:
        if not isinstance(p, dict):
            logger.debug(f"[decode_periods] Skipping non-object period {p!r}")
            continue
        try:
            start = parse_instant(p.get("startTime"))
            end = parse_instant(p.get("endTime"))
        except ValueError as e:
            logger.debug(f"[decode_periods] Skipping period {p.get('name', '?')}: {e}")
            continue

        temp = p.get("temperature")
        # Newer responses wrap temperature as {"unitCode": ..., "value": ...}
        if isinstance(temp, dict):
            temp = temp.get("value")

        periods.append(ForecastPeriod(
            name=_text(p.get("name")),
            start=start,
            end=end,
            is_daytime=p.get("isDaytime") is True,
            short_forecast=_text(p.get("shortForecast")),
            temperature=float(temp) if isinstance(temp, (int, float)) and not isinstance(temp, bool) else None,
            temperature_unit=_text(p.get("temperatureUnit"), "F")
        ))

    return periods


def find_period(periods: List[ForecastPeriod], instant: datetime) -> Optional[ForecastPeriod]:
    """The period whose [start, end) contains `instant`, if any."""
    for period in periods:
        if period.contains(instant):
            return period
    return None


def _epoch(raw: Any) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(parse_instant(raw).timestamp())
    except ValueError:
        logger.debug(f"[decode_alerts] Unparseable alert time {raw!r}")
        return None


def decode_alerts(document: Optional[Dict[str, Any]]) -> List[Alert]:
    """
    Map weather.gov alert features to OpenWeather-style alerts.

    Features that are not objects are skipped.

    Raises:
        PartialSourceError: the document has no features list
    """
    features = document.get("features") if isinstance(document, dict) else None
    if features is None and isinstance(document, dict):
        return []
    if not isinstance(features, list):
        raise PartialSourceError("Alerts document has no features list")

    alerts: List[Alert] = []
    for feature in features:
        props = feature.get("properties") if isinstance(feature, dict) else None
        if not isinstance(props, dict):
            logger.debug(f"[decode_alerts] Skipping malformed feature {feature!r}")
            continue
        alerts.append({
            "sender_name": _text(props.get("senderName"), "National Weather Service"),
            "event": _text(props.get("event"), "Weather Alert"),
            "start": _epoch(props.get("onset")),
            "end": _epoch(props.get("ends")),
            "description": _text(props.get("description")),
            "tags": [t for t in (props.get("severity"), props.get("urgency"), props.get("certainty"))
                     if isinstance(t, str) and t],
        })
    return alerts


class NWSProvider:
    """
    Provider for weather.gov text forecasts and alerts.

    Requires a GridAddress already resolved by GridResolver.
    """

    def __init__(self, base_url: str = NWS_BASE_URL, user_agent: str = DEFAULT_USER_AGENT):
        self.base_url = base_url.rstrip("/")
        self.headers = nws_headers(user_agent)

    def _no_cache_headers(self) -> Dict[str, str]:
        return {**self.headers, "Cache-Control": "no-cache"}

    async def fetch_forecast_periods(
        self,
        client: httpx.AsyncClient,
        address: GridAddress,
        units: str = "imperial"
    ) -> List[ForecastPeriod]:
        """
        Fetch and decode the 'Period' forecast (Today, Tonight, Monday, ...).

        weather.gov supports "us" and "si"; both "metric" and "standard"
        map to "si".

        Raises:
            PartialSourceError: the response is not a forecast document
        """
        units_param = "us" if units == "imperial" else "si"
        url = f"{self.base_url}/gridpoints/{address.path}/forecast"
        params = {"units": units_param, "_": str(int(time.time() * 1000))}

        logger.info(f"[NWSProvider] Fetching forecast periods for {address.path} (units={units_param})")
        resp = await client.get(url, params=params, headers=self._no_cache_headers())
        resp.raise_for_status()
        data = resp.json()

        raw_count = len(_raw_periods(data))
        periods = decode_periods(data)
        logger.info(f"[NWSProvider] Decoded {len(periods)}/{raw_count} forecast periods")
        return periods

    async def fetch_hourly_periods(self, client: httpx.AsyncClient, address: GridAddress) -> List[ForecastPeriod]:
        """Fetch and decode the hourly text forecast (one period per hour)."""
        url = f"{self.base_url}/gridpoints/{address.path}/forecast/hourly"

        logger.info(f"[NWSProvider] Fetching hourly forecast for {address.path}")
        resp = await client.get(url, headers=self._no_cache_headers())
        resp.raise_for_status()
        data = resp.json()

        raw_count = len(_raw_periods(data))
        periods = decode_periods(data)
        logger.info(f"[NWSProvider] Decoded {len(periods)}/{raw_count} hourly periods")
        return periods

    async def fetch_alerts(self, client: httpx.AsyncClient, latitude: float, longitude: float) -> List[Alert]:
        """Fetch and decode active alerts for a point."""
        url = f"{self.base_url}/alerts/active"
        params = {"point": f"{latitude},{longitude}"}

        logger.info(f"[NWSProvider] Fetching active alerts for {latitude},{longitude}")
        resp = await client.get(url, params=params, headers=self.headers)
        resp.raise_for_status()

        alerts = decode_alerts(resp.json())
        logger.info(f"[NWSProvider] {len(alerts)} active alerts")
        return alerts
