"""IP geolocation lookup via ipinfo.io.

Bounded by a one-second wall clock across at most two attempts; any
failure falls back to a default location so sign-up and sign-in never
wait on the lookup for long.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
from collections.abc import Callable

import httpx
from pydantic import BaseModel

from ticketzetu.config import GeolocationSettings, settings

logger = logging.getLogger(__name__)

MAX_CACHED_LOCATIONS = 10_000


class GeoLocation(BaseModel):
    """Coarse location for an IP address."""

    ip_address: str = ""
    city: str = ""
    state: str = ""
    country: str = "Unknown"
    continent: str = "Unknown"
    zip: str = ""
    timezone: str = "UTC"


def local_location(ip: str) -> GeoLocation:
    return GeoLocation(
        ip_address=ip,
        city="Localhost",
        state="Local",
        country="Local",
        continent="Local",
        zip="00000",
        timezone="UTC",
    )


def is_local_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local


def _continent(data: dict) -> str:
    value = data.get("continent")
    if isinstance(value, dict):
        value = value.get("name")
    return str(value or "Unknown")


class GeolocationService:
    """ipinfo.io client with retries, a bounded TTL cache and safe defaults."""

    def __init__(
        self,
        config: GeolocationSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or settings.geo
        self._transport = transport
        self._clock = clock
        self._cache: dict[str, tuple[GeoLocation, float]] = {}

    async def lookup(self, ip: str) -> GeoLocation:
        """Resolve `ip`; never raises."""
        if not ip:
            return GeoLocation()
        if is_local_ip(ip):
            return local_location(ip)
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            logger.warning("Invalid IP address for geolocation: %s", ip)
            return GeoLocation(ip_address=ip)

        cached = self._cache.get(ip)
        if cached is not None and cached[1] > self._clock():
            return cached[0]

        try:
            location = await asyncio.wait_for(self._fetch(ip), timeout=self._config.geo_timeout)
        except TimeoutError:
            logger.warning("Geolocation lookup timed out for %s", ip)
            location = None

        if location is None:
            return GeoLocation(ip_address=ip)
        self._remember(ip, location)
        return location

    def _remember(self, ip: str, location: GeoLocation) -> None:
        now = self._clock()
        self._cache = {key: entry for key, entry in self._cache.items() if entry[1] > now}
        self._cache.pop(ip, None)
        while len(self._cache) >= MAX_CACHED_LOCATIONS:
            del self._cache[next(iter(self._cache))]
        self._cache[ip] = (location, now + self._config.geo_cache_ttl)

    async def _fetch(self, ip: str) -> GeoLocation | None:
        url = f"{self._config.ipinfo_base_url.rstrip('/')}/{ip}/json"
        params = {"token": self._config.ipinfo_token} if self._config.ipinfo_token else None
        attempts = self._config.geo_max_attempts

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.geo_timeout),
            transport=self._transport,
        ) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    data: dict = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Geolocation attempt %d for %s failed: %s", attempt, ip, exc)
                    if attempt < attempts:
                        await asyncio.sleep(self._config.geo_backoff * attempt)
                    continue
                return GeoLocation(
                    ip_address=ip,
                    city=str(data.get("city") or ""),
                    state=str(data.get("region") or ""),
                    country=str(data.get("country") or "Unknown"),
                    continent=_continent(data),
                    zip=str(data.get("postal") or ""),
                    timezone=str(data.get("timezone") or "UTC"),
                )
        return None
