"""Relevance scoring: does a nearby spot actually belong to the target scenic area?

Score components (additive, final score clamped to [0, 1]):
- address contains the area's full name          +0.9
- name contains the area's full name             +0.8
- key-term hits in the spot name                 up to +0.4 (hits / terms)
- key-term hits in the spot address              up to +0.3 (hits / terms)
- key term shared by spot and area addresses     +0.05 each
- distance penalty                               up to -0.1, linear to 1500 m

Name/address evidence dominates distance, so a far but clearly named spot
still ranks above a near anonymous one.
"""

import logging

import config
from models import FilterConfig, ScenicArea, Spot
from query_planner import extract_key_terms

logger = logging.getLogger(__name__)


def _term_ratio(text: str, terms: list[str]) -> tuple[int, float]:
    hits = sum(1 for t in terms if t in text)
    return hits, (hits / len(terms) if terms else 0.0)


def distance_penalty(distance: float) -> float:
    if not distance:
        return 0.0
    return min(distance / config.PENALTY_DISTANCE_M, 1.0) * config.MAX_DISTANCE_PENALTY


def calculate_relevance_score(spot: Spot, area: ScenicArea, key_terms: list[str] | None = None) -> float:
    terms = [t.casefold() for t in (key_terms if key_terms is not None else extract_key_terms(area.name))]
    area_name = area.name.casefold()
    spot_name = spot.name.casefold()
    spot_address = (spot.address or "").casefold()

    score = 0.0
    if spot_address and area_name in spot_address:
        score += config.ADDRESS_EXACT_BONUS
    if area_name in spot_name:
        score += config.NAME_EXACT_BONUS

    _, ratio = _term_ratio(spot_name, terms)
    score += ratio * config.NAME_TERM_WEIGHT

    if spot_address:
        _, ratio = _term_ratio(spot_address, terms)
        score += ratio * config.ADDRESS_TERM_WEIGHT

    if spot_address and area.address:
        # One bonus per shared term; no cap before the final clamp.
        area_address = area.address.casefold()
        shared = sum(1 for t in terms if t in spot_address and t in area_address)
        score += shared * config.SHARED_LOCALITY_BONUS

    score = max(0.0, score - distance_penalty(spot.distance))
    return min(score, 1.0)


def min_score_for(cfg: FilterConfig) -> float:
    """A filter strength, when set, overrides min_relevance_score."""
    if cfg.filter_strength:
        return config.FILTER_STRENGTH_MIN_SCORE[cfg.filter_strength]
    return cfg.min_relevance_score


def filter_spots_by_area(spots: list[Spot], area: ScenicArea, cfg: FilterConfig | None = None) -> list[Spot]:
    """Score, threshold, sort descending and truncate. Disabled filtering passes spots through untouched."""
    cfg = cfg or FilterConfig(**config.FILTER_CONFIG)
    if not cfg.enable_filtering:
        return spots

    key_terms = extract_key_terms(area.name)
    logger.info("Filtering %d spots for %s (key terms: %s)", len(spots), area.name, ", ".join(key_terms))

    scored = [
        spot.model_copy(update={"relevance_score": calculate_relevance_score(spot, area, key_terms)})
        for spot in spots
    ]
    threshold = min_score_for(cfg)
    kept = [s for s in scored if s.relevance_score >= threshold]
    kept.sort(key=lambda s: s.relevance_score, reverse=True)
    kept = kept[: cfg.max_results]

    logger.info("Filtered to %d relevant spots (min score %.2f)", len(kept), threshold)
    if kept:
        logger.debug("Score range: %.2f - %.2f", kept[-1].relevance_score, kept[0].relevance_score)
    return kept
