"""Scenic-area geocoding with a static fallback and a persistent cache.

resolve(area):
  1. cache hit on name_address -> returned as-is (coordinate entries never expire)
  2. live geocode through the configured provider (AMap or Baidu)
  3. on any upstream/network failure -> city-center fallback table, else a
     hard default center

Fallback results are cached too, so a failing area is not retried until the
cache is cleared explicitly.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass

import httpx

import config
from cache import TTLCache
from errors import ConfigurationError, UpstreamError
from geo import bd09_to_gcj02, parse_lng_lat
from models import BatchResolveReport, CityStats, Coordinate, CoordinateResult, ScenicArea
from signature import mask_secret, signed_params
from upstream import get_json, open_client

logger = logging.getLogger(__name__)


@dataclass
class GeocodeHit:
    coordinates: Coordinate
    formatted_address: str | None = None
    confidence: int | str | None = None
    precise: bool | None = None


class GeocodingProvider(ABC):
    name: str = ""

    def __init__(self, include_address: bool = False):
        self.include_address = include_address

    def build_query(self, area: ScenicArea) -> str:
        query = f"{area.province or ''}{area.city or ''}{area.name}"
        if self.include_address and area.address:
            query = f"{query} {area.address}"
        return query

    @abstractmethod
    async def geocode(self, client: httpx.AsyncClient, query: str) -> GeocodeHit:
        """Return the best match or raise UpstreamError."""


class AmapGeocoder(GeocodingProvider):
    """AMap (高德) geocoder. Coordinates are GCJ-02; requests are signed when a secret is set."""

    name = "amap"

    def __init__(self, api_key: str, api_secret: str = "", include_address: bool = False, clock=time.time):
        super().__init__(include_address)
        if not api_key:
            raise ConfigurationError("AMAP_API_KEY is not configured")
        self.api_key = api_key
        self.api_secret = api_secret
        self.clock = clock
        if not api_secret:
            logger.warning("AMAP_API_SECRET not configured; requests go out unsigned and may fail with INVALID_USER_IP")

    async def geocode(self, client: httpx.AsyncClient, query: str) -> GeocodeHit:
        params = {
            "address": query,
            "key": self.api_key,
            "output": "JSON",
            "timestamp": str(int(self.clock())),
        }
        data = await get_json(client, config.AMAP_GEOCODE_URL, signed_params(params, self.api_secret))
        geocodes = data.get("geocodes") or []
        if data.get("status") != "1" or not geocodes:
            raise UpstreamError(f"Amap API error: {data.get('info') or data.get('status')}", status=data.get("status"))
        best = geocodes[0]
        try:
            coordinates = parse_lng_lat(best["location"])
        except (KeyError, ValueError, AttributeError) as e:
            raise UpstreamError(f"Amap API error: bad location {best.get('location')!r}") from e
        return GeocodeHit(
            coordinates=coordinates,
            formatted_address=best.get("formatted_address"),
            confidence=best.get("level"),
            precise=True,
        )


class BaiduGeocoder(GeocodingProvider):
    """Baidu geocoder. Replies are BD-09 and are converted to GCJ-02 so every
    provider yields the same datum as the spot search."""

    name = "baidu"

    def __init__(self, api_key: str, include_address: bool = True):
        super().__init__(include_address)
        if not api_key:
            raise ConfigurationError("BAIDU_API_KEY is not configured")
        self.api_key = api_key

    def build_query(self, area: ScenicArea) -> str:
        if self.include_address and area.address:
            return area.address
        return f"{area.province or ''}{area.city or ''}{area.name}"

    async def geocode(self, client: httpx.AsyncClient, query: str) -> GeocodeHit:
        params = {"address": query, "output": "json", "ak": self.api_key}
        data = await get_json(client, config.BAIDU_GEOCODE_URL, params)
        location = (data.get("result") or {}).get("location")
        if data.get("status") != 0 or not location:
            raise UpstreamError(f"Baidu API error: {data.get('message') or data.get('status')}", status=str(data.get("status")))
        result = data["result"]
        return GeocodeHit(
            coordinates=bd09_to_gcj02(Coordinate(lat=location["lat"], lng=location["lng"])),
            formatted_address=result.get("formatted_address"),
            confidence=result.get("confidence"),
            precise=bool(result.get("precise")),
        )


PROVIDER_ALIASES = {
    "amap": "amap",
    "gaode": "amap",
    "高德": "amap",
    "baidu": "baidu",
    "百度": "baidu",
}


def create_geocoder(provider: str | None = None) -> GeocodingProvider:
    """Build the geocoder selected by `provider` or MAP_PROVIDER."""
    requested = (provider or config.MAP_PROVIDER or "amap").lower()
    resolved = PROVIDER_ALIASES.get(requested)
    if resolved is None:
        logger.warning("Unknown map provider %r, falling back to amap", requested)
        resolved = "amap"
    if resolved == "baidu":
        logger.info("Using Baidu geocoder (key %s)", mask_secret(config.BAIDU_API_KEY))
        return BaiduGeocoder(config.BAIDU_API_KEY)
    logger.info("Using AMap geocoder (key %s)", mask_secret(config.AMAP_API_KEY))
    return AmapGeocoder(config.AMAP_API_KEY, config.AMAP_API_SECRET)


def cache_key(area: ScenicArea) -> str:
    return re.sub(r"\s+", "_", f"{area.name}_{area.address or area.city or ''}")


def fallback_city(area: ScenicArea, table: dict[str, dict[str, float]]) -> str:
    """City name used for the fallback lookup: the area's city, else one named in its address."""
    city = (area.city or "").replace("市", "")
    if city in table:
        return city
    for text in (area.address, area.name):
        for known in table:
            if text and known in text:
                return known
    return city


class CoordinateResolver:
    def __init__(
        self,
        geocoder: GeocodingProvider,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        fallback_table: dict[str, dict[str, float]] | None = None,
        default_center: dict[str, float] | None = None,
    ):
        self.geocoder = geocoder
        self.cache = cache
        self.client = client
        self.fallback_table = fallback_table if fallback_table is not None else config.FALLBACK_CITY_COORDINATES
        self.default_center = default_center or config.DEFAULT_CENTER

    def fallback(self, area: ScenicArea, error: str | None = None, query: str | None = None) -> CoordinateResult:
        city = fallback_city(area, self.fallback_table)
        center = self.fallback_table.get(city, self.default_center)
        return CoordinateResult(
            name=area.name,
            coordinates=Coordinate(**center),
            status="fallback",
            source="fallback",
            city=city or None,
            query=query,
            error=error,
            timestamp=self.cache.now_ms(),
        )

    def cached(self, area: ScenicArea) -> CoordinateResult | None:
        record = self.cache.get(cache_key(area))
        return CoordinateResult.model_validate(record) if record else None

    async def resolve(self, area: ScenicArea, delay_s: float = 0) -> CoordinateResult:
        key = cache_key(area)
        hit = self.cached(area)
        if hit:
            logger.info("Using cached coordinates for %s: %s,%s", area.name, hit.coordinates.lat, hit.coordinates.lng)
            return hit

        if delay_s > 0:
            await asyncio.sleep(delay_s)

        query = self.geocoder.build_query(area)
        logger.info("Geocoding %s via %s: %r", area.name, self.geocoder.name, query)
        start = time.monotonic()
        try:
            async with open_client(self.client) as client:
                match = await self.geocoder.geocode(client, query)
            elapsed_ms = int((time.monotonic() - start) * 1000)
            result = CoordinateResult(
                name=area.name,
                coordinates=match.coordinates,
                status="found",
                source=self.geocoder.name,
                query=query,
                formatted_address=match.formatted_address,
                confidence=match.confidence,
                precise=match.precise,
                response_time_ms=elapsed_ms,
                timestamp=self.cache.now_ms(),
            )
            logger.info("Found %s: %s,%s (%s)", area.name, result.coordinates.lat, result.coordinates.lng, match.formatted_address)
        except (UpstreamError, httpx.HTTPError) as e:
            message = str(e) or type(e).__name__
            logger.warning("Geocode failed for %s, using fallback: %s", area.name, message)
            result = self.fallback(area, error=message, query=query)

        self.cache.set(key, result.model_dump(mode="json", exclude_none=True))
        return result

    async def resolve_area(self, area: ScenicArea, delay_s: float = 0) -> CoordinateResult:
        """Resolve and write the result into `area.center`."""
        result = await self.resolve(area, delay_s)
        area.apply_center(result.coordinates)
        return result

    async def resolve_all(self, areas: list[ScenicArea], delay_s: float = config.GEOCODE_DELAY_S) -> BatchResolveReport:
        """Resolve areas one after another with a fixed pause before each live request."""
        results: list[CoordinateResult] = []
        by_city: dict[str, CityStats] = defaultdict(CityStats)
        start = time.monotonic()

        for i, area in enumerate(areas):
            logger.info("Processing %d/%d: %s (%s level)", i + 1, len(areas), area.name, area.level or "Unknown")
            result = await self.resolve_area(area, delay_s if i > 0 else 0)
            results.append(result)
            stats = by_city[area.city or "Unknown"]
            stats.total += 1
            if result.status == "found":
                stats.found += 1
            else:
                stats.fallback += 1

        found = sum(1 for r in results if r.status == "found")
        report = BatchResolveReport(results=results, found=found, fallback=len(results) - found, by_city=dict(by_city))
        logger.info(
            "Geocoded %d areas in %.1fs: %d found, %d fallback",
            len(results), time.monotonic() - start, report.found, report.fallback,
        )
        for city, stats in report.by_city.items():
            logger.info("  %s: %d/%d found", city, stats.found, stats.total)
        return report

    def clear(self, area: ScenicArea | None = None) -> int:
        if area is None:
            return self.cache.clear()
        return int(self.cache.delete(cache_key(area)))
