"""Tests for scenic-area geocoding, fallback and coordinate caching."""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from cache import MemoryStore, TTLCache
from errors import ConfigurationError
from geo import bd09_to_gcj02, haversine
from geocoder import (
    AmapGeocoder,
    BaiduGeocoder,
    CoordinateResolver,
    cache_key,
    create_geocoder,
    fallback_city,
)
from models import Coordinate, ScenicArea
from signature import sign

LONGMEN = ScenicArea(name="龙门石窟", address="河南省洛阳市洛龙区龙门中街13号", level="5A")

AMAP_FOUND = {
    "status": "1",
    "info": "OK",
    "geocodes": [{
        "location": "112.4747,34.5553",
        "formatted_address": "河南省洛阳市洛龙区龙门石窟",
        "level": "兴趣点",
    }],
}
AMAP_ERROR = {"status": "0", "info": "INVALID_USER_KEY"}


def run_resolver(payload, areas, geocoder=None, status_code=200):
    """Resolve `areas` in order against a mocked provider; returns (results, requests, resolver)."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, json=payload)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resolver = CoordinateResolver(
                geocoder or AmapGeocoder("test-key", "s3cret", clock=lambda: 1_700_000_000),
                TTLCache(MemoryStore()),
                client=client,
            )
            return [await resolver.resolve(a) for a in areas], resolver

    results, resolver = asyncio.run(go())
    return results, calls, resolver


def test_found_result():
    (result,), calls, _ = run_resolver(AMAP_FOUND, [LONGMEN])
    assert result.status == "found"
    assert result.coordinates.lat == 34.5553
    assert result.coordinates.lng == 112.4747
    assert result.source == "amap"
    assert result.error is None
    assert len(calls) == 1


def test_request_is_signed():
    _, calls, _ = run_resolver(AMAP_FOUND, [LONGMEN])
    params = dict(calls[0].url.params)
    sig = params.pop("sig")
    assert params["address"] == "龙门石窟"
    assert params["timestamp"] == "1700000000"
    assert sig == sign(params, "s3cret")


def test_error_status_falls_back_to_city_table():
    (result,), _, _ = run_resolver(AMAP_ERROR, [LONGMEN])
    assert result.status == "fallback"
    assert result.coordinates.lat == 34.6197
    assert result.coordinates.lng == 112.4540
    assert "INVALID_USER_KEY" in result.error


def test_http_error_falls_back():
    (result,), _, _ = run_resolver({}, [LONGMEN], status_code=500)
    assert result.status == "fallback"
    assert "500" in result.error


def test_network_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resolver = CoordinateResolver(AmapGeocoder("k"), TTLCache(MemoryStore()), client=client)
            return await resolver.resolve(LONGMEN)

    result = asyncio.run(go())
    assert result.status == "fallback"
    assert result.error


def test_second_resolve_is_cached():
    (first, second), calls, _ = run_resolver(AMAP_FOUND, [LONGMEN, LONGMEN])
    assert len(calls) == 1
    assert second.coordinates == first.coordinates
    assert second.model_dump() == first.model_dump()


def test_fallback_is_cached_too():
    (first, second), calls, _ = run_resolver(AMAP_ERROR, [LONGMEN, LONGMEN])
    assert len(calls) == 1
    assert second.status == "fallback"


def test_fallback_is_deterministic():
    (a,), _, _ = run_resolver(AMAP_ERROR, [LONGMEN])
    (b,), _, _ = run_resolver(AMAP_ERROR, [LONGMEN])
    assert a.coordinates == b.coordinates


def test_unknown_city_uses_default_center():
    area = ScenicArea(name="某某景区", city="不存在市")
    (result,), _, _ = run_resolver(AMAP_ERROR, [area])
    assert result.coordinates.lat == config.DEFAULT_CENTER["lat"]
    assert result.coordinates.lng == config.DEFAULT_CENTER["lng"]


def test_clear_removes_cached_entry():
    _, _, resolver = run_resolver(AMAP_ERROR, [LONGMEN])
    assert resolver.clear(LONGMEN) == 1
    assert resolver.cached(LONGMEN) is None


def test_missing_key_is_fatal():
    with pytest.raises(ConfigurationError):
        AmapGeocoder("")
    with pytest.raises(ConfigurationError):
        BaiduGeocoder("")


def test_create_geocoder_aliases(monkeypatch):
    monkeypatch.setattr(config, "BAIDU_API_KEY", "baidu-key")
    monkeypatch.setattr(config, "AMAP_API_KEY", "amap-key")
    assert isinstance(create_geocoder("百度"), BaiduGeocoder)
    assert isinstance(create_geocoder("gaode"), AmapGeocoder)
    assert isinstance(create_geocoder("unknown"), AmapGeocoder)


def test_baidu_geocoder():
    payload = {"status": 0, "result": {"location": {"lng": 112.481, "lat": 34.561}, "precise": 1, "confidence": 80}}
    (result,), calls, _ = run_resolver(payload, [LONGMEN], geocoder=BaiduGeocoder("ak"))
    assert result.status == "found"
    # BD-09 reply is reported in GCJ-02, a few hundred metres from the raw point
    expected = bd09_to_gcj02(Coordinate(lat=34.561, lng=112.481))
    assert result.coordinates == expected
    assert result.coordinates.lat != 34.561
    assert haversine(34.561, 112.481, expected.lat, expected.lng) < 1500
    assert result.confidence == 80
    assert calls[0].url.params["address"] == LONGMEN.address


def test_cache_key_normalizes_whitespace():
    area = ScenicArea(name="清明 上河园", address="开封市 龙亭区")
    assert cache_key(area) == "清明_上河园_开封市_龙亭区"
    assert cache_key(ScenicArea(name="云台山", city="焦作")) == "云台山_焦作"


def test_fallback_city_from_address():
    assert fallback_city(LONGMEN, config.FALLBACK_CITY_COORDINATES) == "洛阳"
    assert fallback_city(ScenicArea(name="x", city="开封市"), config.FALLBACK_CITY_COORDINATES) == "开封"


def test_resolve_all_reports_per_city():
    areas = [
        ScenicArea(name="龙门石窟", city="洛阳"),
        ScenicArea(name="白马寺", city="洛阳"),
        ScenicArea(name="清明上河园", city="开封"),
    ]
    calls = []

    def handler(request):
        calls.append(request)
        if "开封" in request.url.params["address"]:
            return httpx.Response(200, json=AMAP_ERROR)
        return httpx.Response(200, json=AMAP_FOUND)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resolver = CoordinateResolver(AmapGeocoder("k"), TTLCache(MemoryStore()), client=client)
            return await resolver.resolve_all(areas, delay_s=0)

    report = asyncio.run(go())
    assert report.found == 2
    assert report.fallback == 1
    assert report.by_city["洛阳"].found == 2
    assert report.by_city["开封"].fallback == 1
    assert areas[0].center is not None
    assert areas[2].center.lat == config.FALLBACK_CITY_COORDINATES["开封"]["lat"]
