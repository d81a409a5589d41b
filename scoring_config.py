"""
Scoring model configuration for AreaScore.

Owns every numeric constant that affects the area score: the POI weight
and normalization tables, the static state market-heat table, flood and
sentiment parameters, and the score bands.  Provider endpoints and
request pacing remain with the clients that use them.

Frozen dataclasses provide type checking and IDE support without
the indirection of YAML/JSON config files.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


# =============================================================================
# Dataclasses
# =============================================================================

POI_CATEGORIES = ("shopping", "restaurant", "school", "park", "transport")


@dataclass(frozen=True)
class StateHeatRecord:
    """One row of the static per-state market-heat table."""
    state_code: str      # two-letter USPS code, unique key
    average: float       # 0-100 market pressure average
    final_score: float   # 0-200 precomputed heat score


@dataclass(frozen=True)
class CategoryRule:
    """Maps place-type substrings to a POI category.

    Rules are evaluated in declaration order; the first rule with any
    matching substring wins.
    """
    category: str
    type_substrings: Tuple[str, ...]


@dataclass(frozen=True)
class NameBoost:
    """Score multiplier applied when a place name contains a keyword."""
    category: str
    keywords: Tuple[str, ...]
    multiplier: float


@dataclass(frozen=True)
class PoiConfig:
    weights: Dict[str, float]        # place type -> base weight (insertion order = search order)
    max_scores: Dict[str, float]     # category -> weighted total that maps to 200
    rules: Tuple[CategoryRule, ...]
    name_boosts: Tuple[NameBoost, ...]


@dataclass(frozen=True)
class FloodConfig:
    """Penalties for the FEMA zone path and bands for risk levels."""
    base_score: int = 200
    sfha_penalty: int = 100
    coastal_zone_penalty: int = 75       # V, VE
    riverine_zone_penalty: int = 50      # A, AE, AH, AO
    moderate_zone_penalty: int = 25      # X shaded (0.2% annual chance)
    depth_factor: float = 5.0
    velocity_factor: float = 2.0
    max_hazard_penalty: int = 25         # cap per depth / velocity factor
    # Synthetic generator bounds (triangular distribution)
    synthetic_low: float = 50.0
    synthetic_high: float = 200.0
    synthetic_mode: float = 175.0


@dataclass(frozen=True)
class SentimentConfig:
    positive_min_rating: int = 4
    negative_max_rating: int = 2
    trend_delta: float = 0.3
    volume_divisor: float = 10.0
    volume_cap: float = 30.0
    positive_ratio_weight: float = 30.0
    price_base: float = 20.0
    price_factor: float = 5.0
    keyword_min_length: int = 4
    keyword_limit: int = 5
    stopwords: Tuple[str, ...] = ("this", "that", "with", "from", "they", "have")


@dataclass(frozen=True)
class MarketBands:
    """Average thresholds shared by market type and trend classification."""
    buyer_max: float = 40.0
    seller_min: float = 60.0


@dataclass(frozen=True)
class ScoreBand:
    """Maps a minimum fraction of the maximum total to a tier label."""
    min_fraction: float
    key: str
    label: str
    summary: str


@dataclass(frozen=True)
class ScoringModel:
    """Top-level container for all scoring parameters.

    A single module-level instance (SCORING_MODEL) is the source of truth.
    Bump `version` on every change that alters score outputs.
    """
    version: str
    sub_score_max: int
    poi: PoiConfig
    flood: FloodConfig
    sentiment: SentimentConfig
    market: MarketBands
    score_bands: Tuple[ScoreBand, ...]


# =============================================================================
# Pure helpers
# =============================================================================

def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up.

    Python's round() is round-half-to-even, which produces unintuitive
    results at .5 boundaries (round(40.5) -> 40).  Scores are never
    negative, so floor(x + 0.5) is sufficient.
    """
    return int(value + 0.5)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# Static state market-heat table
# =============================================================================

# Declaration order is the tie-break order for state ranking.
STATE_HEAT_TABLE: Tuple[StateHeatRecord, ...] = (
    StateHeatRecord("CT", 81.1, 191.33),
    StateHeatRecord("RI", 77.8, 184.34),
    StateHeatRecord("NY", 74.2, 174.46),
    StateHeatRecord("ME", 72.4, 169.16),
    StateHeatRecord("AK", 69.7, 164.34),
    StateHeatRecord("IL", 67.1, 158.07),
    StateHeatRecord("MA", 66.8, 156.87),
    StateHeatRecord("ND", 66.6, 157.11),
    StateHeatRecord("MN", 64.3, 150.60),
    StateHeatRecord("NJ", 62.4, 148.67),
    StateHeatRecord("WI", 61.7, 144.34),
    StateHeatRecord("VA", 60.5, 143.37),
    StateHeatRecord("NH", 59.8, 140.48),
    StateHeatRecord("MD", 59.7, 141.93),
    StateHeatRecord("PA", 59.5, 140.48),
    StateHeatRecord("OH", 59.4, 138.31),
    StateHeatRecord("MI", 59.4, 137.83),
    StateHeatRecord("CA", 57.9, 136.14),
    StateHeatRecord("VT", 56.7, 133.01),
    StateHeatRecord("NM", 56.1, 133.73),
    StateHeatRecord("WV", 55.7, 131.57),
    StateHeatRecord("SD", 54.3, 128.19),
    StateHeatRecord("DE", 54.0, 128.43),
    StateHeatRecord("KS", 52.0, 121.93),
    StateHeatRecord("UT", 51.7, 122.65),
    StateHeatRecord("NV", 51.3, 121.45),
    StateHeatRecord("MO", 50.7, 119.52),
    StateHeatRecord("WY", 49.6, 114.70),
    StateHeatRecord("WA", 48.9, 114.46),
    StateHeatRecord("IA", 48.3, 112.53),
    StateHeatRecord("CO", 47.0, 110.12),
    StateHeatRecord("IN", 46.3, 107.71),
    StateHeatRecord("NE", 45.8, 106.02),
    StateHeatRecord("AZ", 45.7, 109.16),
    StateHeatRecord("ID", 44.9, 104.82),
    StateHeatRecord("OR", 44.5, 104.34),
    StateHeatRecord("LA", 43.7, 104.10),
    StateHeatRecord("GA", 43.7, 102.65),
    StateHeatRecord("MS", 43.6, 104.10),
    StateHeatRecord("AR", 43.1, 102.89),
    StateHeatRecord("AL", 42.3, 99.76),
    StateHeatRecord("OK", 42.0, 99.76),
    StateHeatRecord("NC", 42.0, 98.07),
    StateHeatRecord("TX", 39.9, 94.46),
    StateHeatRecord("MT", 39.7, 92.29),
    StateHeatRecord("HI", 38.6, 90.60),
    StateHeatRecord("KY", 37.5, 87.95),
    StateHeatRecord("TN", 35.9, 84.58),
    StateHeatRecord("SC", 35.4, 84.10),
    StateHeatRecord("FL", 32.8, 78.31),
)

STATE_HEAT_BY_CODE: Dict[str, StateHeatRecord] = {
    r.state_code: r for r in STATE_HEAT_TABLE
}


# =============================================================================
# SCORING_MODEL: current production values
# =============================================================================

# Search order follows insertion order.  A place first seen under a type
# that does not classify (e.g. convenience_store) is still marked as seen.
_POI_WEIGHTS = {
    # Shopping
    "grocery_or_supermarket": 5,
    "supermarket": 5,
    "shopping_mall": 5,
    "convenience_store": 2,
    # Restaurants
    "restaurant": 3,
    "cafe": 2,
    "meal_takeaway": 2,
    # Schools
    "primary_school": 8,
    "secondary_school": 8,
    "school": 8,
    # Parks
    "park": 1,
    "playground": 2,
    # Transport
    "transit_station": 5,
    "bus_station": 3,
    "train_station": 5,
}

# Weighted total per category that saturates the 200-point scale.
# school=10 is the canonical value; an earlier layout used 63.
_POI_MAX_SCORES = {
    "shopping": 50,
    "restaurant": 38,
    "school": 10,
    "park": 25,
    "transport": 75,
}

_POI_RULES = (
    CategoryRule("shopping", ("supermarket", "shopping")),
    CategoryRule("restaurant", ("restaurant", "cafe")),
    CategoryRule("school", ("school",)),
    CategoryRule("park", ("park", "playground")),
    CategoryRule("transport", ("station",)),
)

_POI_NAME_BOOSTS = (
    NameBoost(
        "shopping",
        ("walmart", "kroger", "target", "tom thumb", "costco", "sam's club", "whole foods"),
        2.0,
    ),
    NameBoost("school", ("elementary", "middle", "high school"), 1.5),
    NameBoost("park", ("community", "regional", "municipal"), 1.5),
)


SCORING_MODEL = ScoringModel(
    version="1.0.0",
    sub_score_max=200,

    poi=PoiConfig(
        weights=_POI_WEIGHTS,
        max_scores=_POI_MAX_SCORES,
        rules=_POI_RULES,
        name_boosts=_POI_NAME_BOOSTS,
    ),

    flood=FloodConfig(),
    sentiment=SentimentConfig(),
    market=MarketBands(buyer_max=40.0, seller_min=60.0),

    # Quarter points of the maximum total; scaled when flood is disabled.
    score_bands=(
        ScoreBand(
            0.75, "excellent", "Excellent",
            "Excellent location! High potential for development with strong community features.",
        ),
        ScoreBand(
            0.50, "good", "Good",
            "Good location with balanced amenities and growth potential.",
        ),
        ScoreBand(
            0.25, "moderate", "Moderate",
            "Moderate potential. Consider future development plans in the area.",
        ),
        ScoreBand(
            0.0, "limited", "Limited",
            "Limited amenities. May require significant infrastructure development.",
        ),
    ),
)


# Validate static tables at import time (ValueError, not assert,
# so validation is never stripped by python -O).
if len(STATE_HEAT_TABLE) != 50:
    raise ValueError(f"State heat table has {len(STATE_HEAT_TABLE)} rows, expected 50")
if len(STATE_HEAT_BY_CODE) != len(STATE_HEAT_TABLE):
    raise ValueError("State heat table has duplicate state codes")
if set(_POI_MAX_SCORES) != set(POI_CATEGORIES):
    raise ValueError("POI max-score table must cover exactly the five categories")
for _rule in _POI_RULES:
    if _rule.category not in POI_CATEGORIES:
        raise ValueError(f"Unknown POI category in rules: {_rule.category!r}")
