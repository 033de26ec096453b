"""Tests for nearby spot search and the enhanced-query plan."""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import ConfigurationError, PipelineError, SearchFailedError, UpstreamError
from models import Coordinate, FilterConfig, ResultSet, ScenicArea, Spot
from query_planner import GENERIC_QUERY
from spot_search import SpotSearchClient, _parse_poi, resolve_radius, search_scenic_area

CENTER = Coordinate(lat=34.5553, lng=112.4747)
LONGMEN = ScenicArea(name="龙门石窟", address="洛阳市洛龙区龙门中街13号", level="5A", center=CENTER)

AROUND_OK = {
    "status": "1",
    "count": "2",
    "pois": [
        {
            "id": "B0FFF",
            "name": "龙门石窟-奉先寺",
            "type": "风景名胜;风景名胜;国家级景点",
            "address": "龙门石窟景区内",
            "location": "112.4712,34.5561",
            "distance": "320",
            "tel": [],
            "biz_ext": {"rating": "4.8"},
            "photos": [{"url": "http://example.com/a.jpg"}],
        },
        {
            "id": "B0EEE",
            "name": "香山寺",
            "address": [],
            "location": "112.4801,34.5502",
            "distance": "",
            "biz_ext": [],
        },
    ],
}


class FakeSearcher:
    """Stands in for SpotSearchClient: returns canned spots per query, or raises."""

    def __init__(self, by_query=None, fail=()):
        self.by_query = by_query or {}
        self.fail = set(fail)
        self.queries = []

    async def search(self, center, radius, query=GENERIC_QUERY, **kwargs):
        self.queries.append((query, radius))
        if query in self.fail:
            raise UpstreamError(f"API returned error: DAILY_QUERY_OVER_LIMIT for {query}")
        spots = self.by_query.get(query, [])
        return ResultSet(query=query, results=spots, count=len(spots), total=len(spots))


def spot(id, name, address=""):
    return Spot(id=id, name=name, address=address, location=CENTER)


def test_radius_by_level():
    assert resolve_radius(ScenicArea(name="a", level="5A")) == 1500
    assert resolve_radius(ScenicArea(name="a", level="4A")) == 1000
    assert resolve_radius(ScenicArea(name="a", level="3A")) == 500
    assert resolve_radius(ScenicArea(name="a")) == 500


def test_radius_explicit_wins():
    area = ScenicArea(name="a", level="5A", radius=800)
    assert resolve_radius(area) == 800
    assert resolve_radius(area, 2000) == 2000


def test_parse_poi_normalizes_fields():
    poi = _parse_poi(AROUND_OK["pois"][0], CENTER)
    assert poi.id == "B0FFF"
    assert poi.location.lng == 112.4712
    assert poi.distance == 320
    assert poi.tel == ""
    assert poi.rating == 4.8


def test_parse_poi_computes_missing_distance():
    poi = _parse_poi(AROUND_OK["pois"][1], CENTER)
    assert poi.address == ""
    assert poi.rating == 0.0
    assert 500 < poi.distance < 1000


def test_client_search_request_and_parse():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=AROUND_OK)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            searcher = SpotSearchClient("key", "s3cret", client=client, clock=lambda: 1_700_000_000)
            return await searcher.search(CENTER, 1500, "龙门石窟")

    result = asyncio.run(go())
    params = calls[0].url.params
    assert params["location"] == "112.4747,34.5553"
    assert params["radius"] == "1500"
    assert params["keywords"] == "龙门石窟"
    assert "sig" in params
    assert result.count == 2
    assert result.total == 2
    assert [s.id for s in result.results] == ["B0FFF", "B0EEE"]


def test_client_search_error_status():
    def handler(request):
        return httpx.Response(200, json={"status": "0", "info": "INVALID_USER_SIGNATURE", "infocode": "10007"})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await SpotSearchClient("key", client=client).search(CENTER, 500)

    with pytest.raises(UpstreamError, match="10007"):
        asyncio.run(go())


def test_client_requires_key():
    with pytest.raises(ConfigurationError):
        SpotSearchClient("")


def test_enhanced_search_merges_and_filters():
    searcher = FakeSearcher({
        "龙门石窟 景点": [spot("1", "龙门石窟西山"), spot("2", "肯德基")],
        "龙门石窟": [spot("1", "龙门石窟西山"), spot("3", "龙门石窟东山")],
    })
    result = asyncio.run(search_scenic_area(LONGMEN, searcher, query_delay_s=0))
    assert result.status == "success"
    assert result.total == 3
    assert {s.id for s in result.results} == {"1", "3"}
    assert result.filtering.original_count == 3
    assert result.filtering.filtered_count == 2
    assert result.filtering.filter_ratio == 0.67
    assert result.scenic_area.radius == 1500
    assert all(r == 1500 for _, r in searcher.queries)


def test_partial_query_failure_still_succeeds():
    searcher = FakeSearcher(
        {GENERIC_QUERY: [spot("1", "龙门石窟西山")]},
        fail={"龙门石窟 景点", "龙门石窟"},
    )
    result = asyncio.run(search_scenic_area(LONGMEN, searcher, query_delay_s=0))
    assert result.count == 1
    assert len(searcher.queries) == 4


def test_all_queries_failing_raises():
    class AlwaysFails(FakeSearcher):
        async def search(self, center, radius, query=GENERIC_QUERY, **kwargs):
            raise UpstreamError("HTTP 503")

    with pytest.raises(SearchFailedError):
        asyncio.run(search_scenic_area(LONGMEN, AlwaysFails(), query_delay_s=0))


def test_single_query_mode():
    searcher = FakeSearcher({GENERIC_QUERY: [spot("1", "龙门石窟西山")]})
    cfg = FilterConfig(use_enhanced_queries=False)
    result = asyncio.run(search_scenic_area(LONGMEN, searcher, filter_config=cfg))
    assert searcher.queries == [(GENERIC_QUERY, 1500)]
    assert result.count == 1


def test_filtering_disabled_keeps_everything():
    searcher = FakeSearcher({"龙门石窟": [spot("1", "肯德基"), spot("2", "星巴克")]})
    cfg = FilterConfig(enable_filtering=False)
    result = asyncio.run(search_scenic_area(LONGMEN, searcher, filter_config=cfg, query_delay_s=0))
    assert result.count == 2
    assert result.filtering.enabled is False


def test_legacy_coordinates_used_as_center():
    area = ScenicArea(name="白马寺", coordinates=Coordinate(lat=34.7232, lng=112.5961))
    searcher = FakeSearcher()
    result = asyncio.run(search_scenic_area(area, searcher, query_delay_s=0))
    assert result.scenic_area.center.lat == 34.7232


def test_missing_center_without_resolver():
    with pytest.raises(PipelineError, match="No center"):
        asyncio.run(search_scenic_area(ScenicArea(name="白马寺"), FakeSearcher(), query_delay_s=0))


def test_result_json_uses_aliases():
    searcher = FakeSearcher({"龙门石窟": [spot("1", "龙门石窟西山")]})
    result = asyncio.run(search_scenic_area(LONGMEN, searcher, query_delay_s=0))
    dumped = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    assert dumped["scenicArea"]["name"] == "龙门石窟"
    assert "relevanceScore" in dumped["results"][0]
