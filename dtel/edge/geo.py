"""
IP geolocation and distance helpers.

Lookups are best effort: a locator returns None instead of raising, so a
missing location always routes the resolver to random ordering.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

import aiohttp
import numpy as np

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088

DEFAULT_GEOIP_URL = "http://ip-api.com/json/{ip}"


@dataclass(frozen=True)
class GeoLocation:
    """A point on the globe in decimal degrees."""
    latitude: float
    longitude: float


class GeoLocator(Protocol):
    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        ...


class StaticGeoLocator:
    """Geolocation from a fixed ip -> location table."""

    def __init__(self, table: Optional[Dict[str, GeoLocation]] = None):
        self.table = dict(table or {})

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        return self.table.get(ip)


class HttpGeoLocator:
    """
    Geolocation through an HTTP lookup service.

    The URL template receives the IP as ``{ip}``; the JSON response must
    carry ``lat``/``lon`` or ``latitude``/``longitude``.
    """

    def __init__(self, url_template: str = DEFAULT_GEOIP_URL, timeout: float = 3.0):
        self.url_template = url_template
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        session = await self._get_session()
        try:
            async with session.get(self.url_template.format(ip=ip)) as resp:
                if resp.status != 200:
                    logger.debug(f"Geolocation of {ip} failed: HTTP {resp.status}")
                    return None
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Geolocation of {ip} failed: {e}")
            return None

        return parse_location(data)


def parse_location(data) -> Optional[GeoLocation]:
    """Extract a location from a lookup response body."""
    if not isinstance(data, dict):
        return None
    lat = data.get("lat", data.get("latitude"))
    lon = data.get("lon", data.get("longitude"))
    if lat is None or lon is None:
        return None
    try:
        return GeoLocation(latitude=float(lat), longitude=float(lon))
    except (TypeError, ValueError):
        return None


def distances_km(
    origin: GeoLocation,
    latitudes: Sequence[float],
    longitudes: Sequence[float]
) -> np.ndarray:
    """Great-circle (haversine) distances from origin to each point."""
    lat1 = np.radians(origin.latitude)
    lon1 = np.radians(origin.longitude)
    lat2 = np.radians(np.asarray(latitudes, dtype=float))
    lon2 = np.radians(np.asarray(longitudes, dtype=float))

    a = (
        np.sin((lat2 - lat1) / 2) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))
