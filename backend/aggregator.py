"""Merge nearby-search result sets from a multi-query plan."""

from models import ResultSet, Spot


def merge_results(result_sets: list[ResultSet | None]) -> list[Spot]:
    """Concatenate result sets, keeping the first spot seen for each provider id.

    Earlier result sets (higher-priority queries) therefore rank first until
    relevance scoring reorders them.
    """
    seen: set[str] = set()
    merged: list[Spot] = []
    for result_set in result_sets:
        if not result_set:
            continue
        for spot in result_set.results:
            if spot.id in seen:
                continue
            seen.add(spot.id)
            merged.append(spot)
    return merged
