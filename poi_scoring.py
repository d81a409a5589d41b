"""
Points-of-interest scoring.

Classifies nearby Google Places results into five categories (shopping,
restaurant, school, park, transport), accumulates weighted totals per
category, and reduces them to one 0-200 score.

Each tracked place type is searched separately, so the same physical
place can come back under several types.  A global place_id set makes
sure it is counted once, under the first type that returned it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from scoring_config import (
    POI_CATEGORIES,
    SCORING_MODEL,
    PoiConfig,
    round_half_up,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Place:
    """One external place result."""
    place_id: str
    name: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    types: Tuple[str, ...] = ()

    @classmethod
    def from_google(cls, raw: Dict) -> "Place":
        name = raw.get("name")
        location = (raw.get("geometry") or {}).get("location") or {}
        return cls(
            place_id=raw.get("place_id") or "",
            name=name if isinstance(name, str) else "",
            lat=location.get("lat"),
            lng=location.get("lng"),
            rating=raw.get("rating"),
            user_ratings_total=raw.get("user_ratings_total"),
            price_level=raw.get("price_level"),
            types=tuple(raw.get("types") or ()),
        )


@dataclass(frozen=True)
class CategoryTally:
    count: int = 0
    weighted_score: float = 0.0


@dataclass(frozen=True)
class PoiAnalysis:
    score: int                                # 0-200
    details: Dict[str, CategoryTally]         # exactly the five categories
    normalized: Dict[str, float] = field(default_factory=dict)
    poi_count: int = 0                        # places that classified
    failed_types: Tuple[str, ...] = ()        # searches that errored


# =============================================================================
# CLASSIFIER
# =============================================================================

def classify_place(
    place_type: str,
    name: Optional[str] = None,
    config: PoiConfig = SCORING_MODEL.poi,
) -> Tuple[Optional[str], float]:
    """Map a place type (and display name) to (category, score).

    Unmatched types return (None, 0).  The base score is the table weight
    for the exact type key; a category-specific name boost may multiply it.
    """
    category = None
    for rule in config.rules:
        if any(s in place_type for s in rule.type_substrings):
            category = rule.category
            break
    if category is None:
        return None, 0

    score = config.weights.get(place_type, 0)
    lowered = (name or "").lower()
    for boost in config.name_boosts:
        if boost.category != category:
            continue
        if any(k in lowered for k in boost.keywords):
            score *= boost.multiplier
        break
    return category, score


# =============================================================================
# AGGREGATOR
# =============================================================================

def empty_poi_analysis() -> PoiAnalysis:
    return PoiAnalysis(
        score=0,
        details={c: CategoryTally() for c in POI_CATEGORIES},
        normalized={c: 0.0 for c in POI_CATEGORIES},
    )


def aggregate_poi(
    results: Sequence[Tuple[str, Sequence[Place]]],
    config: PoiConfig = SCORING_MODEL.poi,
    failed_types: Sequence[str] = (),
) -> PoiAnalysis:
    """Reduce per-type search results to a 0-200 POI score.

    *results* is an ordered sequence of ``(place_type, places)``.
    """
    counts = {c: 0 for c in POI_CATEGORIES}
    weighted = {c: 0.0 for c in POI_CATEGORIES}
    seen = set()

    for place_type, places in results:
        for place in places:
            if not place.place_id or place.place_id in seen:
                continue
            seen.add(place.place_id)

            category, score = classify_place(place_type, place.name, config)
            if category:
                counts[category] += 1
                weighted[category] += score

    normalized = {
        c: min(200.0, weighted[c] / config.max_scores[c] * 200)
        for c in POI_CATEGORIES
    }
    mean = sum(normalized.values()) / len(POI_CATEGORIES)

    return PoiAnalysis(
        score=round_half_up(min(200.0, mean)),
        details={c: CategoryTally(counts[c], weighted[c]) for c in POI_CATEGORIES},
        normalized=normalized,
        poi_count=sum(counts.values()),
        failed_types=tuple(failed_types),
    )


def search_poi(
    maps,
    lat: float,
    lng: float,
    radius_meters: int,
    config: PoiConfig = SCORING_MODEL.poi,
    pacing_s: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[List[Tuple[str, List[Place]]], List[str]]:
    """Run one nearby search per tracked type, in table order.

    Returns ``(results, failed_types)``.  A failing search is logged and
    skipped; it never aborts the remaining searches.
    """
    results: List[Tuple[str, List[Place]]] = []
    failed: List[str] = []
    for i, place_type in enumerate(config.weights):
        if i and pacing_s > 0:
            sleep(pacing_s)
        try:
            raw = maps.places_nearby(lat, lng, place_type, radius_meters=radius_meters)
            places = [Place.from_google(r) for r in raw]
        except Exception:
            logger.warning("POI search failed for %s", place_type, exc_info=True)
            failed.append(place_type)
            continue
        results.append((place_type, places))
    return results, failed


def score_poi_access(
    maps,
    lat: float,
    lng: float,
    radius_meters: int,
    pacing_s: float = 0.2,
    config: PoiConfig = SCORING_MODEL.poi,
) -> PoiAnalysis:
    """Search every tracked type and aggregate.  Partial failures degrade."""
    results, failed = search_poi(
        maps, lat, lng, radius_meters, config=config, pacing_s=pacing_s,
    )
    analysis = aggregate_poi(results, config, failed_types=failed)
    if failed:
        logger.info(
            "POI score %d computed with %d/%d searches failed",
            analysis.score, len(failed), len(config.weights),
        )
    return analysis
