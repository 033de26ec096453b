"""FastAPI application exposing scenic-area geocoding and spot search."""

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
from ai_areas import ScenicAreaService, create_ai_provider
from cache import CacheManager
from errors import AIResponseError, ConfigurationError, PipelineError, SearchFailedError, UpstreamError
import geo
from geocoder import CoordinateResolver, create_geocoder
from models import (
    BatchResolveReport,
    Coordinate,
    CitySearchReport,
    CoordinateResult,
    FilterConfig,
    ScenicArea,
    SpotSearchResult,
)
from pipeline import search_city
from spot_search import SpotSearchClient, search_scenic_area

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def _build(app: FastAPI, name: str, factory) -> None:
    """Build a collaborator; a configuration error leaves it unset and is reported per request."""
    try:
        setattr(app.state, name, factory())
    except ConfigurationError as e:
        logger.warning("%s unavailable: %s", name, e)
        setattr(app.state, name, None)
        app.state.config_errors[name] = str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.config_errors = {}
    app.state.caches = CacheManager.create()
    app.state.http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_S)
    _build(app, "resolver", lambda: CoordinateResolver(create_geocoder(), app.state.caches.coordinates, client=app.state.http))
    _build(app, "searcher", lambda: SpotSearchClient.from_config(client=app.state.http))
    _build(app, "scenic_areas", lambda: ScenicAreaService(
        create_ai_provider(), app.state.caches, resolver=app.state.resolver, client=app.state.http,
    ))
    logger.info("Services initialized (cache backend: %s)", config.CACHE_BACKEND)
    yield
    await app.state.http.aclose()


app = FastAPI(title="Scenic Spot Resolver", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(UpstreamError)
@app.exception_handler(SearchFailedError)
@app.exception_handler(AIResponseError)
async def upstream_error_handler(request: Request, exc: PipelineError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------- Admin auth for paid/write endpoints ----------

async def verify_admin(x_api_key: str = Header(default="")):
    """Protect endpoints that spend API quota. No key configured = allow (local dev)."""
    admin_key = config.ADMIN_API_KEY
    if not admin_key:
        return
    if x_api_key != admin_key:
        raise HTTPException(403, "Invalid or missing API key")


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        errors = getattr(request.app.state, "config_errors", {})
        raise ConfigurationError(errors.get(name, f"{name} is not configured"))
    return service


def get_caches(request: Request) -> CacheManager:
    return _service(request, "caches")


def get_resolver(request: Request) -> CoordinateResolver:
    return _service(request, "resolver")


def get_searcher(request: Request) -> SpotSearchClient:
    return _service(request, "searcher")


def get_scenic_areas(request: Request) -> ScenicAreaService:
    return _service(request, "scenic_areas")


# ---------- Request bodies ----------

class BatchResolveRequest(BaseModel):
    scenic_areas: list[ScenicArea]
    delay_s: float = config.GEOCODE_DELAY_S


class SpotSearchRequest(BaseModel):
    scenic_area: ScenicArea
    radius: int | None = None
    filter: FilterConfig | None = None


class CitySearchRequest(BaseModel):
    filter: FilterConfig | None = None
    delay_s: float = config.AREA_DELAY_S


# ---------- Health check ----------

@app.get("/health")
async def health():
    return {"status": "ok"}


# ---------- Coordinates ----------

@app.post("/coordinates/resolve", response_model=CoordinateResult, dependencies=[Depends(verify_admin)])
async def resolve_coordinates(area: ScenicArea, resolver: CoordinateResolver = Depends(get_resolver)):
    return await resolver.resolve(area)


@app.post("/coordinates/batch", dependencies=[Depends(verify_admin)])
async def resolve_coordinates_batch(body: BatchResolveRequest, resolver: CoordinateResolver = Depends(get_resolver)):
    report: BatchResolveReport = await resolver.resolve_all(body.scenic_areas, body.delay_s)
    return {
        "report": report.model_dump(mode="json"),
        "scenic_areas": [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in body.scenic_areas],
    }


@app.get("/coordinates/convert", response_model=Coordinate)
async def convert_coordinates(
    lat: float,
    lng: float,
    source: str = Query("bd09", description="wgs84 | gcj02 | bd09"),
    target: str = Query("gcj02", description="wgs84 | gcj02 | bd09"),
):
    try:
        return geo.convert(Coordinate(lat=lat, lng=lng), source, target)
    except ValueError as e:
        raise HTTPException(400, str(e))


# ---------- Spots ----------

@app.post("/spots/search", dependencies=[Depends(verify_admin)])
async def search_spots(
    request: Request,
    body: SpotSearchRequest,
    searcher: SpotSearchClient = Depends(get_searcher),
):
    resolver = getattr(request.app.state, "resolver", None)
    try:
        result: SpotSearchResult = await search_scenic_area(
            body.scenic_area, searcher, resolver, radius=body.radius, filter_config=body.filter,
        )
    except (SearchFailedError, UpstreamError, ConfigurationError):
        raise
    except PipelineError as e:
        raise HTTPException(400, str(e))
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.post("/cities/{province}/{city}/spots", response_model=CitySearchReport, dependencies=[Depends(verify_admin)])
async def search_city_spots(
    request: Request,
    province: str,
    city: str,
    body: CitySearchRequest | None = None,
    searcher: SpotSearchClient = Depends(get_searcher),
):
    body = body or CitySearchRequest()
    resolver = getattr(request.app.state, "resolver", None)
    try:
        return await search_city(province, city, searcher, resolver, filter_config=body.filter, area_delay_s=body.delay_s)
    except FileNotFoundError as e:
        raise HTTPException(404, str(e))


# ---------- AI scenic-area listings ----------

@app.get("/provinces/{province}/scenic-areas", dependencies=[Depends(verify_admin)])
async def province_scenic_areas(
    province: str,
    refresh: bool = Query(False, description="Drop the cached listing and rebuild it"),
    service: ScenicAreaService = Depends(get_scenic_areas),
):
    if refresh:
        return await service.force_refresh(province)
    return await service.get_scenic_areas_by_province(province)


@app.get("/provinces/validation")
async def province_validation(service: ScenicAreaService = Depends(get_scenic_areas)):
    return service.validation_summary()


# ---------- Cache ----------

@app.get("/cache/status")
async def cache_status(caches: CacheManager = Depends(get_caches)):
    return caches.status()


@app.delete("/cache", dependencies=[Depends(verify_admin)])
async def clear_cache(
    request: Request,
    namespace: str | None = Query(None, description="coordinates | ai_calls | provinces; all when omitted"),
    province: str | None = Query(None, description="Only clear this province's listing"),
    include_ai: bool = Query(False, description="With province: also drop its raw AI calls"),
    caches: CacheManager = Depends(get_caches),
):
    if province:
        return {"cleared": get_scenic_areas(request).clear_cache(province, include_ai=include_ai)}
    if namespace and namespace not in CacheManager.NAMESPACES:
        raise HTTPException(400, f"Unknown cache namespace: {namespace}")
    return {"cleared": caches.clear(namespace)}


# ---------- Config (read-only) ----------

@app.get("/config")
async def get_config():
    return {
        "map_provider": config.MAP_PROVIDER,
        "ai_provider": config.AI_PROVIDER,
        "cache_backend": config.CACHE_BACKEND,
        "level_radius_m": config.LEVEL_RADIUS_M,
        "default_radius_m": config.DEFAULT_RADIUS_M,
        "filter": config.FILTER_CONFIG,
        "filter_strength_min_score": config.FILTER_STRENGTH_MIN_SCORE,
        "cache_ttl_s": {
            "coordinates": config.COORDINATE_CACHE_TTL_S,
            "ai_calls": config.AI_CALL_CACHE_TTL_S,
            "provinces": config.PROVINCE_CACHE_TTL_S,
        },
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, log_level="info")
