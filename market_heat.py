"""
Market heat: state-level buyer/seller pressure from the static table.

Extracts a two-letter state code from a formatted address, looks it up in
STATE_HEAT_TABLE, and classifies the market.  Market type and trend share
the same average thresholds (<=40 / >=60); they are two labels for one
snapshot value, not an independent time-series trend.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from scoring_config import (
    SCORING_MODEL,
    STATE_HEAT_BY_CODE,
    STATE_HEAT_TABLE,
    MarketBands,
    StateHeatRecord,
)

logger = logging.getLogger(__name__)


# Tried in order; the first match wins.  Case-sensitive on purpose:
# formatted addresses from the geocoder use upper-case state codes.
_STATE_PATTERNS = (
    re.compile(r",\s*([A-Z]{2})\s*\d{5}"),   # ", TX 75019"
    re.compile(r",\s*([A-Z]{2})\s*,"),        # ", TX,"
    re.compile(r",\s*([A-Z]{2})\s*$"),        # ", TX" at end
    re.compile(r"\b([A-Z]{2})\s*\d{5}"),      # "TX 75019"
)


@dataclass(frozen=True)
class HeatMapAnalysis:
    score: float                  # 0-200 (the table's final score)
    state_code: str               # "N/A" when unresolved
    average: float
    market_type: str              # Buyer | Balanced | Seller
    trend: str                    # Falling | Stable | Rising
    rank: int = 0                 # 1-50, 0 when unresolved
    price_trend_pct: float = 0.0
    avg_days_on_market: int = 0
    inventory_level: str = ""


def extract_state_code(address: str) -> str:
    """Recover a two-letter state code from *address*, or "" if none."""
    for pattern in _STATE_PATTERNS:
        match = pattern.search(address)
        if match:
            return match.group(1)

    upper = address.upper()
    for record in STATE_HEAT_TABLE:
        if record.state_code in upper:
            return record.state_code

    logger.warning("No state found in address: %r", address)
    return ""


def classify_market(average: float, bands: MarketBands = SCORING_MODEL.market) -> str:
    if average <= bands.buyer_max:
        return "Buyer"
    if average >= bands.seller_min:
        return "Seller"
    return "Balanced"


def market_trend(average: float, bands: MarketBands = SCORING_MODEL.market) -> str:
    if average <= bands.buyer_max:
        return "Falling"
    if average >= bands.seller_min:
        return "Rising"
    return "Stable"


def price_trend_pct(average: float, bands: MarketBands = SCORING_MODEL.market) -> float:
    if average >= bands.seller_min:
        return 8.5
    if average <= bands.buyer_max:
        return 2.5
    return 5.5


def avg_days_on_market(average: float, bands: MarketBands = SCORING_MODEL.market) -> int:
    if average >= bands.seller_min:
        return 25
    if average <= bands.buyer_max:
        return 75
    return 45


def inventory_level(average: float, bands: MarketBands = SCORING_MODEL.market) -> str:
    if average >= bands.seller_min:
        return "Low"
    if average <= bands.buyer_max:
        return "High"
    return "Moderate"


def ranked_state_codes(
    table: Tuple[StateHeatRecord, ...] = STATE_HEAT_TABLE,
) -> List[str]:
    """State codes sorted by average, highest first.

    sorted() is stable, so ties keep the table's declaration order.
    """
    return [r.state_code for r in sorted(table, key=lambda r: -r.average)]


_RANKS: Dict[str, int] = {
    code: i + 1 for i, code in enumerate(ranked_state_codes())
}


def state_rank(state_code: str) -> int:
    """1-50 rank of *state_code* by market average; 0 if unknown."""
    return _RANKS.get(state_code, 0)


def unresolved_heat_analysis() -> HeatMapAnalysis:
    return HeatMapAnalysis(
        score=0,
        state_code="N/A",
        average=0,
        market_type="Balanced",
        trend="Stable",
    )


def resolve_market_heat(
    formatted_address: str,
    table: Optional[Dict[str, StateHeatRecord]] = None,
) -> HeatMapAnalysis:
    """Market heat for the state in *formatted_address*.

    An address with no recognizable state returns the zero "N/A" result.
    A custom *table* is also the population the rank is computed over.
    """
    if table is None:
        table, ranks = STATE_HEAT_BY_CODE, _RANKS
    else:
        ranks = {
            code: i + 1
            for i, code in enumerate(ranked_state_codes(tuple(table.values())))
        }
    code = extract_state_code(formatted_address or "")
    record = table.get(code) if code else None
    if record is None:
        if code:
            logger.warning("State %r not in market heat table", code)
        return unresolved_heat_analysis()

    avg = record.average
    return HeatMapAnalysis(
        score=record.final_score,
        state_code=code,
        average=avg,
        market_type=classify_market(avg),
        trend=market_trend(avg),
        rank=ranks.get(record.state_code, 0),
        price_trend_pct=price_trend_pct(avg),
        avg_days_on_market=avg_days_on_market(avg),
        inventory_level=inventory_level(avg),
    )
