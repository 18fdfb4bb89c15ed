"""
gridcast Forecast Pipeline

Orchestrates one poll for one coordinate:
1. Validate the request (no network activity on failure)
2. Resolve the grid address and fetch grid properties (mandatory, sequential)
3. Fetch forecast periods, hourly periods, sun times, UV and alerts
   concurrently; any of these may fail without affecting the others
4. Aggregate into the normalized forecast
5. Merge daily extremes with the revision cache and persist it

A pipeline instance owns the grid-address cache, the revision cache and the
last-poll timestamp. Use one instance per monitored coordinate.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import httpx

from gridcast.aggregator import ForecastAggregator, PipelineInputs
from gridcast.cache_manager import RevisionCache
from gridcast.config import Settings
from gridcast.grid import GridResolver
from gridcast.providers.epa_uv import EPAUVProvider
from gridcast.providers.nws import NWSProvider
from gridcast.providers.sun import SunriseSunsetProvider
from gridcast.resilience import GridcastError, SourceResult, ValidationError, capture, skipped

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDER = "free"


@dataclass
class ForecastRequest:
    """Inbound request from the display side."""
    latitude: Any
    longitude: Any
    zipcode: Optional[str] = None
    units: str = "imperial"
    weather_provider: str = SUPPORTED_PROVIDER

    def coordinates(self) -> Tuple[float, float]:
        """
        Validated (latitude, longitude).

        Raises:
            ValidationError: coordinates missing, empty or not numeric
        """
        if self.latitude is None or self.latitude == "" or self.longitude is None or self.longitude == "":
            raise ValidationError("Latitude and/or longitude not provided")
        try:
            return float(self.latitude), float(self.longitude)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid coordinates {self.latitude!r}, {self.longitude!r}") from e

    def validate(self) -> Tuple[float, float]:
        coords = self.coordinates()
        if self.weather_provider != SUPPORTED_PROVIDER:
            raise ValidationError(f"Unsupported weather provider {self.weather_provider!r}")
        return coords


async def _skip(name: str) -> SourceResult:
    return skipped(name)


class ForecastPipeline:
    """
    Free-provider forecast pipeline.

    Collaborators are injectable for tests; defaults are built from settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resolver: Optional[GridResolver] = None,
        nws: Optional[NWSProvider] = None,
        sun: Optional[SunriseSunsetProvider] = None,
        uv: Optional[EPAUVProvider] = None,
        cache: Optional[RevisionCache] = None
    ):
        self.settings = settings or Settings()
        self.resolver = resolver or GridResolver(user_agent=self.settings.user_agent)
        self.nws = nws or NWSProvider(user_agent=self.settings.user_agent)
        self.sun = sun or SunriseSunsetProvider()
        self.uv = uv or EPAUVProvider()
        self.cache = cache or RevisionCache(self.settings.cache_file)
        self.last_poll: Optional[datetime] = None
        self.last_sources: Dict[str, SourceResult] = {}

    async def fetch_all(self, request: ForecastRequest, client: httpx.AsyncClient) -> PipelineInputs:
        """
        Fetch every source for one poll.

        Raises:
            ValidationError: bad request
            FatalSourceError: grid address or grid properties unavailable
        """
        latitude, longitude = request.validate()
        zipcode = request.zipcode
        units = request.units

        address = await self.resolver.resolve(client, latitude, longitude)
        grid_data = await self.resolver.fetch_grid_data(client, address)

        uv_branch = capture("uv", self.uv.fetch(client, zipcode)) if zipcode else _skip("uv")

        results = await asyncio.gather(
            capture("forecast", self.nws.fetch_forecast_periods(client, address, units)),
            capture("hourly_forecast", self.nws.fetch_hourly_periods(client, address)),
            capture("sun", self.sun.fetch(client, latitude, longitude)),
            uv_branch,
            capture("alerts", self.nws.fetch_alerts(client, latitude, longitude)),
        )
        self.last_sources = {r.name: r for r in results}

        summary = ", ".join(f"{r.name}={r.status_label}" for r in results)
        logger.info(f"[ForecastPipeline] Sources for {address.path}: {summary}")

        return PipelineInputs(
            latitude=latitude,
            longitude=longitude,
            grid_data=grid_data,
            forecast=self.last_sources["forecast"].data,
            hourly_forecast=self.last_sources["hourly_forecast"].data,
            sun=self.last_sources["sun"].data,
            uv=self.last_sources["uv"].data,
            alerts=self.last_sources["alerts"].data,
        )

    async def poll(self, request: ForecastRequest, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one complete poll.

        Returns:
            The normalized forecast dict

        Raises:
            ValidationError: bad request, nothing was fetched
            FatalSourceError: grid data unavailable, nothing was aggregated
        """
        latitude, longitude = request.validate()
        now = now or datetime.now(timezone.utc)

        logger.info(f"[ForecastPipeline] Polling free providers for {latitude},{longitude}")
        self.cache.load()

        async with httpx.AsyncClient(timeout=self.settings.http_timeout, follow_redirects=True) as client:
            inputs = await self.fetch_all(request, client)

        aggregator = ForecastAggregator(
            inputs,
            units=request.units,
            now=now,
            fallback_timezone=self.settings.fallback_timezone
        )
        forecast = aggregator.build()

        forecast["daily"] = self.cache.merge(
            forecast["daily"], latitude, longitude, aggregator.tz, now=now, units=aggregator.units
        )
        self.cache.save()

        self.last_poll = now
        return forecast

    async def fetch_forecast(
        self,
        request: ForecastRequest,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """Non-raising poll: returns None and logs when the poll fails."""
        try:
            return await self.poll(request, now=now)
        except GridcastError as e:
            logger.error(f"[ForecastPipeline] Poll failed: {type(e).__name__}: {e}")
            return None
        except Exception as e:
            logger.error(f"[ForecastPipeline] Unexpected poll failure: {e}", exc_info=True)
            return None
