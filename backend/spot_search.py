"""Spot search around a scenic-area center using the AMap place/around API.

Enhanced-query strategy:
- QueryPlanner yields ~4-5 queries per area (full name, key terms, generic).
- Each query is a single page fetch against the same center + radius.
- A failing query is logged and skipped; only when every query fails does the
  area search fail.
- Results are merged by provider id, then relevance-filtered.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

import config
from aggregator import merge_results
from errors import ConfigurationError, PipelineError, SearchFailedError, UpstreamError
from geo import format_lng_lat, haversine, parse_lng_lat
from geocoder import CoordinateResolver
from models import (
    Coordinate,
    FilterConfig,
    FilteringStats,
    ResultSet,
    ScenicArea,
    ScenicAreaSummary,
    Spot,
    SpotSearchResult,
)
from query_planner import GENERIC_QUERY, generate_enhanced_queries
from relevance import filter_spots_by_area
from signature import signed_params
from upstream import get_json, open_client

logger = logging.getLogger(__name__)


def resolve_radius(area: ScenicArea, radius: int | None = None) -> int:
    """Explicit radius, else the area's own, else the default for its level."""
    if radius:
        return radius
    if area.radius:
        return area.radius
    return config.LEVEL_RADIUS_M.get(area.level or "", config.DEFAULT_RADIUS_M)


def _text(value: Any) -> str:
    # AMap sends [] instead of "" for absent string fields.
    if value is None or isinstance(value, list):
        return ""
    return str(value)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_poi(poi: dict, center: Coordinate) -> Spot:
    location = parse_lng_lat(poi["location"])
    try:
        distance = int(float(poi.get("distance")))
    except (TypeError, ValueError):
        distance = round(haversine(center.lat, center.lng, location.lat, location.lng))
    return Spot(
        id=str(poi["id"]),
        name=_text(poi.get("name")),
        type=_text(poi.get("type")),
        address=_text(poi.get("address")),
        location=location,
        distance=distance,
        tel=_text(poi.get("tel")),
        rating=_to_float((poi.get("biz_ext") or {}).get("rating")),
        photos=poi.get("photos") or [],
        business_area=_text(poi.get("business_area")),
        tag=_text(poi.get("tag")),
        website=_text(poi.get("website")),
        provider="amap",
    )


class SpotSearchClient:
    def __init__(self, api_key: str, api_secret: str = "", client: httpx.AsyncClient | None = None, clock=time.time):
        if not api_key:
            raise ConfigurationError("AMAP_API_KEY is not configured")
        self.api_key = api_key
        self.api_secret = api_secret
        self.client = client
        self.clock = clock

    @classmethod
    def from_config(cls, client: httpx.AsyncClient | None = None) -> "SpotSearchClient":
        return cls(config.AMAP_API_KEY, config.AMAP_API_SECRET, client=client)

    async def search(
        self,
        center: Coordinate,
        radius: int,
        query: str = GENERIC_QUERY,
        page: int = 1,
        page_size: int = config.SEARCH_PAGE_SIZE,
        types: str = config.SEARCH_DEFAULT_TYPES,
    ) -> ResultSet:
        """Fetch one page of spots near `center`. Raises UpstreamError on provider failure."""
        params = {
            "key": self.api_key,
            "location": format_lng_lat(center),
            "radius": radius,
            "keywords": query,
            "types": types,
            "offset": page_size,
            "page": page,
            "extensions": config.SEARCH_EXTENSIONS,
            "output": "JSON",
            "timestamp": int(self.clock()),
        }
        logger.info("Searching %r around %s within %dm", query, params["location"], radius)
        async with open_client(self.client) as client:
            data = await get_json(client, config.AMAP_AROUND_URL, signed_params(params, self.api_secret))

        if data.get("status") != "1":
            raise UpstreamError(
                f"API returned error: {data.get('info')} (code: {data.get('infocode')})",
                status=data.get("status"),
            )
        results = []
        for poi in data.get("pois") or []:
            try:
                results.append(_parse_poi(poi, center))
            except (KeyError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed POI %s: %s", poi.get("id"), e)
        total = int(_to_float(data.get("count")))
        logger.info("Found %d spots for %r (%d total)", len(results), query, total)
        return ResultSet(query=query, results=results, count=len(results), total=total)


async def search_scenic_area(
    area: ScenicArea,
    searcher: SpotSearchClient,
    resolver: CoordinateResolver | None = None,
    radius: int | None = None,
    filter_config: FilterConfig | None = None,
    query_delay_s: float = config.QUERY_DELAY_S,
) -> SpotSearchResult:
    """Resolve center, run the query plan, merge, and relevance-filter."""
    cfg = filter_config or FilterConfig(**config.FILTER_CONFIG)

    center = area.known_center
    if center is None:
        if resolver is None:
            raise PipelineError(f"No center coordinates found for {area.name}")
        center = (await resolver.resolve_area(area)).coordinates
    search_radius = resolve_radius(area, radius)

    if cfg.use_enhanced_queries:
        queries = generate_enhanced_queries(area)
        logger.info("Running %d queries for %s: %s", len(queries), area.name, ", ".join(queries))
        result_sets: list[ResultSet] = []
        failures = 0
        for i, query in enumerate(queries):
            try:
                result_sets.append(await searcher.search(center, search_radius, query))
            except (UpstreamError, httpx.HTTPError) as e:
                failures += 1
                logger.error("Query %r failed for %s: %s", query, area.name, e)
            if i < len(queries) - 1 and query_delay_s > 0:
                await asyncio.sleep(query_delay_s)
        if failures == len(queries):
            raise SearchFailedError(f"All {failures} queries failed for {area.name}")
        candidates = merge_results(result_sets)
        logger.info("Merged %d unique spots for %s", len(candidates), area.name)
    else:
        candidates = (await searcher.search(center, search_radius)).results

    filtered = filter_spots_by_area(candidates, area, cfg)
    return SpotSearchResult(
        count=len(filtered),
        total=len(candidates),
        results=filtered,
        filtering=FilteringStats(
            enabled=cfg.enable_filtering,
            strength=cfg.filter_strength,
            original_count=len(candidates),
            filtered_count=len(filtered),
            filter_ratio=round(len(filtered) / len(candidates), 2) if candidates else 0.0,
        ),
        scenic_area=ScenicAreaSummary(
            name=area.name,
            center=center,
            radius=search_radius,
            level=area.level,
            address=area.address,
            description=getattr(area, "description", None),
        ),
    )
