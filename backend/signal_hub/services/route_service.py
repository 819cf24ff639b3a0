"""
Route Service

Route providers turn an origin/destination pair into an ordered path plus an
ETA string. The hub treats the provider as an external collaborator: if the
call fails the case is still accepted, only the route-dependent work
(relevant signals, simulation) is skipped.

Providers:
- OsrmRouteProvider: OSRM HTTP API (GeoJSON geometry, no polyline decoding)
- StraightLineRouteProvider: direct line at a nominal speed, for offline use
"""

import os
from typing import Optional

import aiohttp

from signal_hub.emergency.lifecycle import RouteResult
from signal_hub.errors import CollaboratorFailure
from signal_hub.geo import distance_meters
from signal_hub.models import Coordinate


def format_eta(seconds: float) -> str:
    """Human readable duration, e.g. '1 min', '14 mins', '1 hour 5 mins'"""
    minutes = max(1, int(round(seconds / 60.0)))
    hours, minutes = divmod(minutes, 60)

    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if minutes or not hours:
        parts.append(f"{minutes} min{'s' if minutes != 1 else ''}")
    return " ".join(parts)


class RouteProvider:
    """Interface used by the coordination hub"""

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> RouteResult:
        raise NotImplementedError

    async def close(self):
        pass


class StraightLineRouteProvider(RouteProvider):
    """Two-point route at a fixed average speed"""

    def __init__(self, speed_kmh: float = 40.0):
        self.speed_kmh = speed_kmh

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> RouteResult:
        distance = distance_meters(origin, destination)
        duration = distance / (self.speed_kmh * 1000.0 / 3600.0)
        return RouteResult(
            path=[origin, destination],
            eta=format_eta(duration),
            distance_meters=distance,
            duration_seconds=duration,
        )


class OsrmRouteProvider(RouteProvider):
    """
    Fetch driving routes from an OSRM server

    Usage:
        provider = OsrmRouteProvider("https://router.project-osrm.org")
        await provider.initialize()
        route = await provider.get_route(origin, destination)
    """

    def __init__(self, base_url: Optional[str] = None, profile: str = "driving", timeout: float = 10.0):
        """
        Initialize the provider

        Args:
            base_url: OSRM server URL (defaults to OSRM_BASE_URL env var)
            profile: OSRM routing profile
            timeout: Total request timeout in seconds
        """
        self.base_url = (base_url or os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")).rstrip("/")
        self.profile = profile
        self.timeout = timeout

        self._session: Optional[aiohttp.ClientSession] = None

        self.request_count = 0
        self.error_count = 0

    async def initialize(self):
        """Initialize the HTTP session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout, connect=5)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        """Close the HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()

    def _build_url(self, origin: Coordinate, destination: Coordinate) -> str:
        # OSRM expects lng,lat pairs
        coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        return f"{self.base_url}/route/v1/{self.profile}/{coords}"

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> RouteResult:
        """
        Request a route

        Raises:
            CollaboratorFailure: on HTTP, network, or payload errors
        """
        await self.initialize()
        self.request_count += 1

        params = {"overview": "full", "geometries": "geojson", "steps": "false"}

        try:
            async with self._session.get(self._build_url(origin, destination), params=params) as response:
                if response.status != 200:
                    self.error_count += 1
                    raise CollaboratorFailure("route", f"OSRM returned HTTP {response.status}")
                data = await response.json()
        except aiohttp.ClientError as e:
            self.error_count += 1
            raise CollaboratorFailure("route", str(e))

        return self._parse_route(data)

    def _parse_route(self, data: dict) -> RouteResult:
        if data.get("code") != "Ok" or not data.get("routes"):
            self.error_count += 1
            raise CollaboratorFailure("route", f"no route found ({data.get('code')})")

        route = data["routes"][0]
        coordinates = route.get("geometry", {}).get("coordinates", [])
        if not coordinates:
            self.error_count += 1
            raise CollaboratorFailure("route", "route has no geometry")

        path = [Coordinate(lat=float(lat), lng=float(lng)) for lng, lat in coordinates]
        duration = float(route.get("duration", 0.0))

        return RouteResult(
            path=path,
            eta=format_eta(duration),
            distance_meters=float(route.get("distance", 0.0)),
            duration_seconds=duration,
        )


def create_route_provider(provider: str = "osrm", base_url: Optional[str] = None, timeout: float = 10.0) -> RouteProvider:
    """Build the configured route provider"""
    if provider == "straight":
        return StraightLineRouteProvider()
    return OsrmRouteProvider(base_url=base_url, timeout=timeout)
