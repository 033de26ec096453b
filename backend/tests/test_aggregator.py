"""Tests for merging multi-query result sets."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from aggregator import merge_results
from models import Coordinate, ResultSet, Spot


def spot(id, name):
    return Spot(id=id, name=name, location=Coordinate(lat=34.55, lng=112.47))


def result_set(query, *spots):
    return ResultSet(query=query, results=list(spots), count=len(spots), total=len(spots))


def test_merge_dedupes_by_id():
    merged = merge_results([
        result_set("龙门石窟 景点", spot("B001", "龙门石窟"), spot("B002", "奉先寺")),
        result_set("龙门石窟", spot("B002", "奉先寺(重复)"), spot("B003", "香山寺")),
    ])
    assert [s.id for s in merged] == ["B001", "B002", "B003"]


def test_first_occurrence_wins():
    merged = merge_results([
        result_set("a", spot("B002", "first")),
        result_set("b", spot("B002", "second")),
    ])
    assert merged[0].name == "first"


def test_merge_skips_missing_sets():
    merged = merge_results([None, result_set("a", spot("B001", "x")), result_set("b")])
    assert len(merged) == 1


def test_merge_empty():
    assert merge_results([]) == []
