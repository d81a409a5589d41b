#!/usr/bin/env python3
"""
Area Score Evaluator

Scores any U.S. location for nearby amenities, safety, market heat,
review sentiment, and flood risk.  Each component produces a 0-200
sub-score; the five are summed into a 0-1000 area score.

Requirements:
- Google Maps API key (Geocoding, Places Nearby Search, Place Details)
- FBI Crime Data Explorer API key (optional; crime falls back to zero)

Usage:
    python area_evaluator.py "123 Main St, Hartford, CT 06103"
    python area_evaluator.py "41.7637,-72.6851" --radius 2000 --json
"""

import os
import sys
import json
import time
import uuid
import random
import logging
import argparse
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Callable, Tuple, Union

from dotenv import load_dotenv

from area_trace import TraceContext, get_trace, set_trace, set_stage, clear_trace
from crime_data import (
    CrimeDataClient,
    CrimeStat,
    crime_rate_level,
    fallback_crime_stat,
    get_crime_stat,
    safety_rating,
)
from flood_risk import (
    FemaFloodClient,
    FloodAssessment,
    get_flood_assessment,
    synthetic_flood_assessment,
)
from maps_client import GoogleMapsClient
from market_heat import HeatMapAnalysis, resolve_market_heat, unresolved_heat_analysis
from poi_scoring import PoiAnalysis, empty_poi_analysis, score_poi_access
from provider_errors import GeocodeError
from scoring_config import POI_CATEGORIES, SCORING_MODEL
from sentiment import (
    SentimentAssessment,
    SimulatedSentimentProvider,
    default_sentiment_assessment,
    get_sentiment_assessment,
)

logger = logging.getLogger(__name__)

load_dotenv()

# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_SEARCH_RADIUS_M = int(os.environ.get("AREASCORE_SEARCH_RADIUS_M", "1500"))

# Fixed delay between consecutive provider calls inside one stage, to stay
# under Places API rate limits.
REQUEST_PACING_S = int(os.environ.get("AREASCORE_REQUEST_PACING_MS", "200")) / 1000

# Feature flags
ENABLE_FLOOD = os.environ.get("ENABLE_FLOOD", "true").lower() == "true"
SIMULATE_SENTIMENT = os.environ.get("AREASCORE_SIMULATE_SENTIMENT", "false").lower() == "true"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PropertyDetails:
    address: str
    coordinates: Dict[str, float]
    radius: int
    poi_count: int


@dataclass(frozen=True)
class AnalysisResult:
    """Combined output for one location.  Never mutated after return."""
    poi: PoiAnalysis
    crime: CrimeStat
    heat_map: HeatMapAnalysis
    sentiment: SentimentAssessment
    flood: Optional[FloodAssessment]
    property_details: PropertyDetails
    total_score: float
    max_score: int
    score_band: Dict[str, str]
    model_version: str


# =============================================================================
# COMPOSER
# =============================================================================

def max_total_score(include_flood: bool = True) -> int:
    components = 5 if include_flood else 4
    return components * SCORING_MODEL.sub_score_max


def compose_total(
    poi: PoiAnalysis,
    crime: CrimeStat,
    heat_map: HeatMapAnalysis,
    sentiment: SentimentAssessment,
    flood: Optional[FloodAssessment] = None,
) -> Tuple[float, int]:
    """Sum the present sub-scores.  Returns (total, maximum possible)."""
    total = poi.score + crime.score + heat_map.score + sentiment.score
    if flood is not None:
        total += flood.score
    return round(float(total), 2), max_total_score(flood is not None)


def get_score_band(score: float, max_score: Optional[int] = None) -> dict:
    """Return band info dict for a given total.

    Thresholds are fractions of *max_score* (default: the 1000-point
    maximum), so they scale when flood is excluded.
    Returns {"key": str, "label": str, "summary": str}.
    """
    if max_score is None:
        max_score = max_total_score(True)
    for band in SCORING_MODEL.score_bands:
        if score >= band.min_fraction * max_score:
            return {"key": band.key, "label": band.label, "summary": band.summary}
    fallback = SCORING_MODEL.score_bands[-1]
    return {"key": fallback.key, "label": fallback.label, "summary": fallback.summary}


# =============================================================================
# STAGES
# =============================================================================

def _is_degraded(result: Any) -> bool:
    return bool(
        getattr(result, "is_fallback", False)
        or getattr(result, "is_synthetic", False)
        or getattr(result, "failed_types", ())
        or getattr(result, "state_code", "") == "N/A"
    )


def _timed_stage(stage_name, fn, *args, **kwargs):
    """Run *fn* with timing.  Logs duration and re-raises on failure."""
    set_stage(stage_name)
    trace = get_trace()
    t0 = time.time()
    try:
        result = fn(*args, **kwargs)
        t1 = time.time()
        if trace:
            trace.record_stage(stage_name, t0, t1, degraded=_is_degraded(result))
        else:
            logger.info("  [stage] %s OK (%.1fs)", stage_name, t1 - t0)
        return result
    except Exception as exc:
        t1 = time.time()
        if trace:
            trace.record_stage(
                stage_name, t0, t1,
                error_class=type(exc).__name__,
                error_message=str(exc)[:200],
            )
        else:
            logger.warning("  [stage] %s FAILED (%.1fs)", stage_name, t1 - t0, exc_info=True)
        raise
    finally:
        set_stage("")


def _timed_stage_in_thread(parent_trace, stage_name, fn, *args, **kwargs):
    """Run _timed_stage in a child thread with trace propagation."""
    set_trace(parent_trace)
    return _timed_stage(stage_name, fn, *args, **kwargs)


def _poi_stage(api_key: str, lat: float, lng: float, radius: int, pacing_s: float) -> PoiAnalysis:
    # Each thread gets its own GoogleMapsClient (requests.Session is not thread-safe)
    return score_poi_access(GoogleMapsClient(api_key), lat, lng, radius, pacing_s=pacing_s)


def _sentiment_stage(
    api_key: str, lat: float, lng: float, radius: int, pacing_s: float,
    simulate: bool, rng: Optional[random.Random],
) -> SentimentAssessment:
    if simulate:
        return SimulatedSentimentProvider(rng or random.Random()).assess()
    return get_sentiment_assessment(GoogleMapsClient(api_key), lat, lng, radius, pacing_s=pacing_s)


def _crime_stage(client: Optional[CrimeDataClient], lat: float, lng: float) -> CrimeStat:
    return get_crime_stat(client or CrimeDataClient(), lat, lng)


def _flood_stage(
    client: Optional[FemaFloodClient], simulate: bool,
    lat: float, lng: float, rng: Optional[random.Random],
) -> FloodAssessment:
    if simulate:
        client = None
    elif client is None:
        client = FemaFloodClient()
    return get_flood_assessment(client, lat, lng, rng=rng)


# Used when a stage raises despite its own isolation (programming error,
# thread failure).  The composite must still produce a result.
_STAGE_DEFAULTS: Dict[str, Callable[[], Any]] = {
    "poi": empty_poi_analysis,
    "crime": fallback_crime_stat,
    "market_heat": unresolved_heat_analysis,
    "sentiment": default_sentiment_assessment,
    "flood": synthetic_flood_assessment,
}


# =============================================================================
# MAIN EVALUATION
# =============================================================================

def evaluate_area(
    query: Union[str, Tuple[float, float]],
    api_key: str,
    radius_meters: int = DEFAULT_SEARCH_RADIUS_M,
    include_flood: bool = ENABLE_FLOOD,
    simulate_sentiment: bool = SIMULATE_SENTIMENT,
    simulate_flood: bool = False,
    crime_client: Optional[CrimeDataClient] = None,
    flood_client: Optional[FemaFloodClient] = None,
    pacing_s: float = REQUEST_PACING_S,
    rng: Optional[random.Random] = None,
    on_stage: Optional[Callable[[str], None]] = None,
) -> AnalysisResult:
    """Run a full area evaluation for an address or (lat, lng).

    Geocoding is the one stage that MUST succeed; GeocodeError propagates.
    The score stages run concurrently and each fails independently,
    substituting its documented default.

    on_stage: optional callback(stage_name: str) for progress reporting.
    """
    eval_start = time.time()

    if on_stage:
        on_stage("geocode")
    geo = _timed_stage("geocode", GoogleMapsClient(api_key).geocode, query)
    lat, lng = geo.lat, geo.lng

    parent_trace = get_trace()
    if parent_trace:
        parent_trace.model_version = SCORING_MODEL.version

    if on_stage:
        on_stage("analyzing")

    futures: Dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=5) as pool:
        futures["poi"] = pool.submit(
            _timed_stage_in_thread, parent_trace, "poi",
            _poi_stage, api_key, lat, lng, radius_meters, pacing_s,
        )
        futures["crime"] = pool.submit(
            _timed_stage_in_thread, parent_trace, "crime",
            _crime_stage, crime_client, lat, lng,
        )
        futures["market_heat"] = pool.submit(
            _timed_stage_in_thread, parent_trace, "market_heat",
            resolve_market_heat, geo.formatted_address,
        )
        futures["sentiment"] = pool.submit(
            _timed_stage_in_thread, parent_trace, "sentiment",
            _sentiment_stage, api_key, lat, lng, radius_meters, pacing_s, simulate_sentiment, rng,
        )
        if include_flood:
            futures["flood"] = pool.submit(
                _timed_stage_in_thread, parent_trace, "flood",
                _flood_stage, flood_client, simulate_flood, lat, lng, rng,
            )

        # Collect results; each stage fails independently
        outputs: Dict[str, Any] = {}
        for stage_name, future in futures.items():
            try:
                outputs[stage_name] = future.result()
            except Exception:
                logger.warning("Stage %s failed; using default", stage_name, exc_info=True)
                outputs[stage_name] = _STAGE_DEFAULTS[stage_name]()

    poi = outputs["poi"]
    crime = outputs["crime"]
    heat_map = outputs["market_heat"]
    sentiment = outputs["sentiment"]
    flood = outputs.get("flood")

    total, max_score = compose_total(poi, crime, heat_map, sentiment, flood)

    result = AnalysisResult(
        poi=poi,
        crime=crime,
        heat_map=heat_map,
        sentiment=sentiment,
        flood=flood,
        property_details=PropertyDetails(
            address=geo.formatted_address,
            coordinates={"lat": lat, "lng": lng},
            radius=radius_meters,
            poi_count=poi.poi_count,
        ),
        total_score=total,
        max_score=max_score,
        score_band=get_score_band(total, max_score),
        model_version=SCORING_MODEL.version,
    )

    logger.info("Evaluation complete for %r  score=%.2f/%d  (%.1fs total)",
                geo.formatted_address, total, max_score, time.time() - eval_start)
    return result


class AnalysisSession:
    """Holds the latest result for one user session.

    A newer analyze() call supersedes any in-flight one: when an older
    request finishes after a newer one has started, its result is
    discarded and never replaces ``latest``.
    """

    def __init__(self, api_key: str, **options):
        self.api_key = api_key
        self.options = options
        self.latest: Optional[AnalysisResult] = None
        self._lock = threading.Lock()
        self._generation = 0

    def analyze(self, query: Union[str, Tuple[float, float]]) -> Optional[AnalysisResult]:
        """Evaluate *query*.  Returns None if superseded before completion."""
        with self._lock:
            self._generation += 1
            generation = self._generation

        result = evaluate_area(query, self.api_key, **self.options)

        with self._lock:
            if generation != self._generation:
                logger.info("Discarding stale analysis for %r", query)
                return None
            self.latest = result
        return result


# =============================================================================
# OUTPUT
# =============================================================================

def result_to_dict(result: AnalysisResult) -> Dict[str, Any]:
    """JSON-safe dict of an AnalysisResult."""
    output = asdict(result)
    output["crime"]["crime_rate_level"] = crime_rate_level(result.crime.crime_rate)
    output["crime"]["safety_rating"] = safety_rating(result.crime.safety_score)
    output["sentiment"]["top_keywords"] = list(result.sentiment.top_keywords)
    output["poi"]["failed_types"] = list(result.poi.failed_types)
    return output


def format_result(result: AnalysisResult) -> str:
    """Format an analysis result as a readable report"""
    lines = []
    details = result.property_details

    lines.append("=" * 70)
    lines.append(f"AREA ASSESSMENT: {details.address}")
    lines.append(
        f"Coordinates: {details.coordinates['lat']:.5f}, {details.coordinates['lng']:.5f}"
        f"   Radius: {details.radius}m   POIs: {details.poi_count}"
    )
    lines.append("=" * 70)

    lines.append(f"\nPOINTS OF INTEREST: {result.poi.score}/200")
    for category in POI_CATEGORIES:
        tally = result.poi.details[category]
        lines.append(f"  {category:<12} {tally.count:>3} places  weighted {tally.weighted_score:g}")
    if result.poi.failed_types:
        lines.append(f"  (searches failed: {', '.join(result.poi.failed_types)})")

    crime = result.crime
    lines.append(f"\nSAFETY: {crime.score}/200" + ("  [data unavailable]" if crime.is_fallback else ""))
    if not crime.is_fallback:
        lines.append(
            f"  Crime rate {crime.crime_rate:,} per 100k ({crime_rate_level(crime.crime_rate)}), "
            f"safety {crime.safety_score}/100 ({safety_rating(crime.safety_score)})"
        )

    heat = result.heat_map
    lines.append(f"\nMARKET HEAT: {heat.score:.2f}/200")
    if heat.state_code != "N/A":
        lines.append(
            f"  {heat.state_code} avg {heat.average:.1f}  {heat.market_type} market, "
            f"{heat.trend}  rank #{heat.rank}/50"
        )
    else:
        lines.append("  State could not be determined")

    s = result.sentiment
    tag = "  [simulated]" if s.is_synthetic else ("  [data unavailable]" if s.is_fallback else "")
    lines.append(f"\nSENTIMENT: {s.score}/200{tag}")
    lines.append(
        f"  Avg rating {s.average_rating:.1f}  {s.total_reviews} reviews  "
        f"engagement {s.community_engagement}  trend {s.trend}"
    )
    if s.top_keywords:
        lines.append(f"  Keywords: {', '.join(s.top_keywords)}")

    if result.flood is not None:
        f = result.flood
        lines.append(f"\nFLOOD RISK: {f.score}/200{'  [simulated]' if f.is_synthetic else ''}")
        lines.append(f"  Zone {f.zone_type} ({f.annual_chance}), {f.risk_level} risk")

    lines.append(f"\n{'=' * 70}")
    lines.append(
        f"AREA SCORE: {result.total_score:.2f}/{result.max_score} ({result.score_band['label']})"
    )
    lines.append(result.score_band["summary"])
    lines.append("=" * 70)
    return "\n".join(lines)


# =============================================================================
# CLI
# =============================================================================

def _init_sentry():
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    sentry_sdk.init(
        dsn=dsn,
        environment=os.environ.get("AREASCORE_ENVIRONMENT", "production"),
        release=SCORING_MODEL.version,
    )


def main():
    parser = argparse.ArgumentParser(
        description="Score a location for amenities, safety, market heat, sentiment, and flood risk"
    )
    parser.add_argument(
        "location",
        nargs="?",
        help='Address or "lat,lng" to evaluate'
    )
    parser.add_argument(
        "--radius",
        type=int,
        default=DEFAULT_SEARCH_RADIUS_M,
        help="Search radius in meters (default %(default)s)"
    )
    parser.add_argument(
        "--no-flood",
        action="store_true",
        help="Exclude flood risk (maximum score becomes 800)"
    )
    parser.add_argument(
        "--simulate-sentiment",
        action="store_true",
        default=SIMULATE_SENTIMENT,
        help="Use simulated review sentiment instead of Place Details"
    )
    parser.add_argument(
        "--simulate-flood",
        action="store_true",
        help="Use simulated flood data instead of FEMA NFHL"
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("GOOGLE_MAPS_API_KEY"),
        help="Google Maps API key (or set GOOGLE_MAPS_API_KEY env var)"
    )
    parser.add_argument(
        "--crime-api-key",
        default=os.environ.get("FBI_CRIME_API_KEY"),
        help="FBI Crime Data Explorer key (or set FBI_CRIME_API_KEY env var)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON instead of formatted text"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log stage timings"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _init_sentry()

    if not args.location:
        parser.print_help()
        sys.exit(1)

    if not args.api_key:
        print("Error: Google Maps API key required. Set GOOGLE_MAPS_API_KEY or use --api-key")
        sys.exit(1)

    trace = TraceContext(trace_id=uuid.uuid4().hex[:12])
    set_trace(trace)
    try:
        result = evaluate_area(
            args.location,
            args.api_key,
            radius_meters=args.radius,
            include_flood=ENABLE_FLOOD and not args.no_flood,
            simulate_sentiment=args.simulate_sentiment,
            simulate_flood=args.simulate_flood,
            crime_client=CrimeDataClient(args.crime_api_key),
        )
    except GeocodeError as exc:
        print(f"Error: Could not find location. {exc}")
        sys.exit(1)
    finally:
        trace.log_summary()
        clear_trace()

    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
    else:
        print(format_result(result))


if __name__ == "__main__":
    main()
