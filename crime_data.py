"""
Crime statistics: FBI Crime Data Explorer client and safety scoring.

Resolves the reporting agency (ORI) for a coordinate, fetches its offense
counts, keeps the most recent reported year, and converts them into a
crime rate per 100k residents, a 0-100 safety score, and a 0-200
sub-score.

Data source:
  - FBI Crime Data Explorer (api.usa.gov/crime/fbi/cde), API key required

Limitations:
  - Agency-level counts: the nearest reporting agency may cover a much
    larger area than the neighborhood being evaluated.
  - Any provider failure produces the all-zero fallback stat, which is
    flagged with is_fallback so it is not read as "perfectly unsafe".
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from area_trace import get_trace
from provider_errors import MalformedPayload, NoDataFound, ProviderUnavailable
from scoring_config import clamp, round_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

_API_BASE = "https://api.usa.gov/crime/fbi/cde"
_API_TIMEOUT = 15  # seconds
CRIME_YEAR_RANGE = (2019, 2023)

# Divisor that turns crimes per 100k into safety points lost.
SAFETY_RATE_DIVISOR = 50

DETAIL_KEYS = ("assaults", "robberies", "burglaries", "thefts", "vehicle_thefts")

# FBI field name -> normalized payload key
_FBI_FIELD_MAP = {
    "population": "population",
    "violent_crime": "violent_crime",
    "property_crime": "property_crime",
    "aggravated_assault": "assaults",
    "robbery": "robberies",
    "burglary": "burglaries",
    "larceny": "thefts",
    "motor_vehicle_theft": "vehicle_thefts",
}


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class CrimeStat:
    """Derived crime metrics for a location."""
    crime_rate: int                 # per 100k residents, rounded
    safety_score: int               # 0-100, rounded
    score: int                      # 0-200
    violent_crime: int = 0
    details: Dict[str, int] = field(default_factory=dict)
    is_fallback: bool = False


def fallback_crime_stat() -> CrimeStat:
    """All-zero stat used whenever crime data is unavailable."""
    return CrimeStat(
        crime_rate=0,
        safety_score=0,
        score=0,
        violent_crime=0,
        details={k: 0 for k in DETAIL_KEYS},
        is_fallback=True,
    )


# =============================================================================
# SCORING
# =============================================================================

def _count(payload: Dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if value is None:
        return 0
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise MalformedPayload(f"crime field {key!r} is not numeric: {value!r}")
    return value


def score_crime(payload: Optional[Dict[str, Any]]) -> CrimeStat:
    """Convert a normalized crime payload into a CrimeStat.

    *payload* uses the keys population, violent_crime, property_crime and
    the DETAIL_KEYS counts.  None, or a population <= 0, yields the
    fallback stat.
    """
    if not payload:
        return fallback_crime_stat()

    population = _count(payload, "population")
    if population <= 0:
        logger.warning("Crime payload has no usable population (%r)", payload.get("population"))
        return fallback_crime_stat()

    violent = _count(payload, "violent_crime")
    property_crime = _count(payload, "property_crime")

    crime_rate = (violent + property_crime) / population * 100000
    safety = clamp(100 - crime_rate / SAFETY_RATE_DIVISOR, 0, 100)

    return CrimeStat(
        crime_rate=round_half_up(crime_rate),
        safety_score=round_half_up(safety),
        score=round_half_up(safety / 100 * 200),
        violent_crime=int(violent),
        details={k: int(_count(payload, k)) for k in DETAIL_KEYS},
    )


def crime_rate_level(rate: float) -> str:
    if rate < 2000:
        return "Very Low"
    if rate < 3000:
        return "Low"
    if rate < 4000:
        return "Moderate"
    if rate < 5000:
        return "High"
    return "Very High"


def safety_rating(safety_score: float) -> str:
    if safety_score >= 80:
        return "Very Safe"
    if safety_score >= 60:
        return "Safe"
    if safety_score >= 40:
        return "Moderate"
    return "Caution Advised"


# =============================================================================
# FBI CRIME DATA EXPLORER CLIENT
# =============================================================================

def parse_crime_payload(raw: Any) -> Dict[str, Any]:
    """Pick the most recent year from an FBI response and normalize keys.

    Raises MalformedPayload when the response has no ``results`` list and
    NoDataFound when the list is empty.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("results"), list):
        raise MalformedPayload("crime response has no results list")
    rows = [r for r in raw["results"] if isinstance(r, dict)]
    if not rows:
        raise NoDataFound("crime response has no rows")

    latest = max(rows, key=lambda r: r.get("data_year") or 0)
    return {
        norm: latest[fbi] for fbi, norm in _FBI_FIELD_MAP.items() if fbi in latest
    }


class CrimeDataClient:
    """Client for the FBI Crime Data Explorer."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.environ.get("FBI_CRIME_API_KEY", "")
        self.base_url = _API_BASE
        self.session = requests.Session()

    def _traced_get(self, endpoint_name: str, url: str) -> Any:
        t0 = time.time()
        try:
            resp = self.session.get(url, params={"API_KEY": self.api_key}, timeout=_API_TIMEOUT)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"FBI CDE {endpoint_name} request failed: {exc}") from exc

        trace = get_trace()
        if trace:
            trace.record_api_call(
                service="fbi_cde",
                endpoint=endpoint_name,
                elapsed_ms=(time.time() - t0) * 1000,
                status_code=resp.status_code,
                provider_status="OK" if resp.ok else "ERROR",
            )
        if not resp.ok:
            raise ProviderUnavailable(f"FBI CDE {endpoint_name} returned {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedPayload(f"FBI CDE {endpoint_name} returned non-JSON") from exc

    def find_agency(self, lat: float, lng: float) -> str:
        data = self._traced_get("agencies_geocoded", f"{self.base_url}/agencies/geocoded/{lat}/{lng}")
        try:
            return data["results"][0]["ori"]
        except (KeyError, IndexError, TypeError) as exc:
            raise NoDataFound(f"No reporting agency near ({lat:.4f}, {lng:.4f})") from exc

    def fetch_payload(self, lat: float, lng: float) -> Dict[str, Any]:
        """Return the normalized payload for the nearest agency's latest year."""
        ori = self.find_agency(lat, lng)
        start, end = CRIME_YEAR_RANGE
        raw = self._traced_get("agency_offenses", f"{self.base_url}/arrest/agencies/{ori}/all/{start}/{end}")
        return parse_crime_payload(raw)


def get_crime_stat(client: Optional[CrimeDataClient], lat: float, lng: float) -> CrimeStat:
    """Fetch and score crime data.  Never raises; degrades to the fallback."""
    if client is None or not client.api_key:
        logger.info("No FBI crime API key configured; using fallback crime stat")
        return fallback_crime_stat()
    try:
        payload = client.fetch_payload(lat, lng)
        return score_crime(payload)
    except Exception:
        logger.warning(
            "Crime data unavailable for (%.4f, %.4f); using fallback",
            lat, lng, exc_info=True,
        )
        return fallback_crime_stat()
