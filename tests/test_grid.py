"""
Tests for the Grid Resolver

These tests verify that:
1. A coordinate is looked up once and then served from the cache
2. Lookup failures and malformed payloads raise FatalSourceError
3. weather.gov requests carry the identification headers

Run with: python -m pytest tests/test_grid.py -v
"""

import sys
from pathlib import Path

import httpx
import pytest
import respx

sys.path.insert(0, str(Path(__file__).parent.parent))

from gridcast.grid import GridAddress, GridResolver
from gridcast.resilience import FatalSourceError

POINTS_URL = "https://api.weather.gov/points/40.0,-75.0"
GRID_URL = "https://api.weather.gov/gridpoints/PHI/50,75"
POINTS_PAYLOAD = {"properties": {"gridId": "PHI", "gridX": 50, "gridY": 75}}


@pytest.fixture
def resolver():
    return GridResolver(user_agent="(gridcast-tests, test@example.com)")


class TestResolve:

    @pytest.mark.asyncio
    @respx.mock
    async def test_resolves_and_caches(self, resolver):
        route = respx.get(POINTS_URL).mock(return_value=httpx.Response(200, json=POINTS_PAYLOAD))

        async with httpx.AsyncClient() as client:
            first = await resolver.resolve(client, 40.0, -75.0)
            second = await resolver.resolve(client, 40.0, -75.0)

        assert first == GridAddress("PHI", 50, 75)
        assert second is first
        assert route.call_count == 1
        assert resolver.cached(40.0, -75.0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_identification_headers(self, resolver):
        route = respx.get(POINTS_URL).mock(return_value=httpx.Response(200, json=POINTS_PAYLOAD))

        async with httpx.AsyncClient() as client:
            await resolver.resolve(client, 40.0, -75.0)

        request = route.calls[0].request
        assert request.headers["user-agent"] == "(gridcast-tests, test@example.com)"
        assert request.headers["accept"] == "application/geo+json"

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_is_fatal(self, resolver):
        respx.get(POINTS_URL).mock(return_value=httpx.Response(404, json={"title": "Not Found"}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.resolve(client, 40.0, -75.0)

        assert not resolver.cached(40.0, -75.0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_fatal(self, resolver):
        respx.get(POINTS_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.resolve(client, 40.0, -75.0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_payload_is_fatal(self, resolver):
        respx.get(POINTS_URL).mock(return_value=httpx.Response(200, json=[POINTS_PAYLOAD]))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.resolve(client, 40.0, -75.0)

        assert not resolver.cached(40.0, -75.0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_grid_fields_is_fatal(self, resolver):
        respx.get(POINTS_URL).mock(return_value=httpx.Response(200, json={"properties": {"gridId": "PHI"}}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.resolve(client, 40.0, -75.0)


class TestFetchGridData:

    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_document(self, resolver):
        respx.get(GRID_URL).mock(return_value=httpx.Response(200, json={"properties": {"timeZone": "America/New_York"}}))

        async with httpx.AsyncClient() as client:
            data = await resolver.fetch_grid_data(client, GridAddress("PHI", 50, 75))

        assert data["properties"]["timeZone"] == "America/New_York"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_properties_is_fatal(self, resolver):
        respx.get(GRID_URL).mock(return_value=httpx.Response(200, json={"type": "Feature"}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.fetch_grid_data(client, GridAddress("PHI", 50, 75))

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_is_fatal(self, resolver):
        respx.get(GRID_URL).mock(return_value=httpx.Response(500))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FatalSourceError):
                await resolver.fetch_grid_data(client, GridAddress("PHI", 50, 75))
