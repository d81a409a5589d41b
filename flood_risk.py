"""
Flood risk: FEMA flood-zone attributes to a 0-200 score.

Queries the FEMA National Flood Hazard Layer (NFHL) for the flood-zone
polygon under a coordinate and scores it by zone type, SFHA designation,
and depth/velocity hazard factors.

When no flood-zone data is available the scorer falls back to a synthetic
generator so the composite still has a flood component.  Synthetic
assessments are NOT authoritative and are always marked is_synthetic=True;
presentation layers must label them as simulated.

Data source:
  - FEMA NFHL MapServer, flood hazard zones layer (no key required)
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import requests

from area_trace import get_trace
from provider_errors import MalformedPayload, ProviderUnavailable
from scoring_config import SCORING_MODEL, FloodConfig, clamp, round_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

FEMA_FLOOD_URL = "https://hazards.fema.gov/arcgis/rest/services/public/NFHL/MapServer/28/query"
_API_TIMEOUT = 30  # seconds; NFHL is slow under load

SHADED_X_SUBTYPE = "0.2 PCT ANNUAL CHANCE FLOOD HAZARD"

_COASTAL_ZONES = {"V", "VE"}
_RIVERINE_ZONES = {"A", "AE", "AH", "AO"}

# NFHL uses -9999 as "not applicable" for numeric fields.
_NFHL_NULL = -9999


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class FloodZoneAttributes:
    zone_id: str
    subtype: str = ""
    is_sfha: bool = False
    base_flood_elevation: Optional[float] = None
    depth: Optional[float] = None
    velocity: Optional[float] = None


@dataclass(frozen=True)
class FloodAssessment:
    score: int                      # 0-200, higher is safer
    risk_level: str                 # High | Moderate | Low | Minimal
    zone_type: str
    annual_chance: str
    description: str
    base_flood_elevation: Optional[float] = None
    is_synthetic: bool = False


# =============================================================================
# SCORING
# =============================================================================

def flood_risk_level(score: float) -> str:
    """Bands are inclusive on their upper bound: 50 is High, 100 Moderate."""
    if score <= 50:
        return "High"
    if score <= 100:
        return "Moderate"
    if score <= 150:
        return "Low"
    return "Minimal"


def zone_penalty(zone_id: str, subtype: str, config: FloodConfig = SCORING_MODEL.flood) -> int:
    zone = (zone_id or "").upper()
    if zone in _COASTAL_ZONES:
        return config.coastal_zone_penalty
    if zone in _RIVERINE_ZONES:
        return config.riverine_zone_penalty
    if zone == "X" and (subtype or "").upper() == SHADED_X_SUBTYPE:
        return config.moderate_zone_penalty
    return 0


def _describe_zone(zone_id: str, subtype: str) -> Tuple[str, str]:
    zone = (zone_id or "").upper()
    if zone in _COASTAL_ZONES:
        return "1% annual chance", "Coastal high hazard area with storm-surge wave action"
    if zone in _RIVERINE_ZONES:
        return "1% annual chance", "Special flood hazard area (100-year floodplain)"
    if zone == "X" and (subtype or "").upper() == SHADED_X_SUBTYPE:
        return "0.2% annual chance", "Moderate flood hazard area (500-year floodplain)"
    if zone == "D":
        return "Undetermined", "Flood hazard undetermined"
    return "Less than 0.2% annual chance", "Area of minimal flood hazard"


def score_flood_zone(
    attrs: FloodZoneAttributes,
    config: FloodConfig = SCORING_MODEL.flood,
) -> FloodAssessment:
    """Score FEMA zone attributes.  Higher score means lower flood risk."""
    score = config.base_score
    if attrs.is_sfha:
        score -= config.sfha_penalty
    score -= zone_penalty(attrs.zone_id, attrs.subtype, config)
    if attrs.depth is not None:
        score -= min(config.max_hazard_penalty, attrs.depth * config.depth_factor)
    if attrs.velocity is not None:
        score -= min(config.max_hazard_penalty, attrs.velocity * config.velocity_factor)
    score = round_half_up(clamp(score, 0, config.base_score))

    annual_chance, description = _describe_zone(attrs.zone_id, attrs.subtype)
    return FloodAssessment(
        score=score,
        risk_level=flood_risk_level(score),
        zone_type=(attrs.zone_id or "").upper() or "UNKNOWN",
        annual_chance=annual_chance,
        description=description,
        base_flood_elevation=attrs.base_flood_elevation,
    )


# Synthetic bands mirror flood_risk_level(): (max score, zone, chance, description, BFE ft)
_SYNTHETIC_BANDS = (
    (50, "VE", "1% annual chance", "Simulated coastal high hazard area", 12.0),
    (100, "AE", "1% annual chance", "Simulated special flood hazard area", 8.0),
    (150, "X", "0.2% annual chance", "Simulated moderate flood hazard area", None),
    (200, "X", "Less than 0.2% annual chance", "Simulated area of minimal flood hazard", None),
)


def synthetic_flood_assessment(
    rng: Optional[random.Random] = None,
    config: FloodConfig = SCORING_MODEL.flood,
) -> FloodAssessment:
    """Demo-only flood assessment drawn from a triangular distribution.

    Biased toward 150-200 (mode 175, bounds 50-200).  Always flagged
    is_synthetic=True.
    """
    rng = rng or random.Random()
    score = round_half_up(
        rng.triangular(config.synthetic_low, config.synthetic_high, config.synthetic_mode)
    )
    for upper, zone, chance, description, bfe in _SYNTHETIC_BANDS:
        if score <= upper:
            break
    return FloodAssessment(
        score=score,
        risk_level=flood_risk_level(score),
        zone_type=zone,
        annual_chance=chance,
        description=description,
        base_flood_elevation=bfe,
        is_synthetic=True,
    )


# =============================================================================
# FEMA NFHL CLIENT
# =============================================================================

def _nfhl_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number <= _NFHL_NULL:
        return None
    return number


def parse_nfhl_response(data: Any) -> Optional[FloodZoneAttributes]:
    """Convert an NFHL query response into attributes (None if no feature)."""
    if not isinstance(data, dict):
        raise MalformedPayload("NFHL response is not an object")
    if "error" in data:
        raise ProviderUnavailable(f"NFHL error: {data['error']}")
    features = data.get("features")
    if features is None:
        raise MalformedPayload("NFHL response has no features list")
    if not features:
        return None

    attrs = features[0].get("attributes") or {}
    zone = attrs.get("FLD_ZONE")
    if not zone:
        raise MalformedPayload("NFHL feature has no FLD_ZONE")
    return FloodZoneAttributes(
        zone_id=str(zone).upper(),
        subtype=(attrs.get("ZONE_SUBTY") or "").upper(),
        is_sfha=attrs.get("SFHA_TF") == "T",
        base_flood_elevation=_nfhl_number(attrs.get("STATIC_BFE")),
        depth=_nfhl_number(attrs.get("DEPTH")),
        velocity=_nfhl_number(attrs.get("VELOCITY")),
    )


class FemaFloodClient:
    """Queries the FEMA NFHL flood hazard layer at a point."""

    def __init__(self, url: str = FEMA_FLOOD_URL):
        self.url = url
        self.session = requests.Session()

    def fetch_zone(self, lat: float, lng: float) -> Optional[FloodZoneAttributes]:
        params = {
            "where": "1=1",
            "geometry": f"{lng},{lat}",
            "geometryType": "esriGeometryPoint",
            "inSR": "4326",
            "spatialRel": "esriSpatialRelIntersects",
            "outFields": "FLD_ZONE,ZONE_SUBTY,SFHA_TF,STATIC_BFE,DEPTH,VELOCITY",
            "returnGeometry": "false",
            "f": "json",
        }
        t0 = time.time()
        try:
            resp = self.session.get(self.url, params=params, timeout=_API_TIMEOUT)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"NFHL request failed: {exc}") from exc

        trace = get_trace()
        if trace:
            trace.record_api_call(
                service="fema_nfhl",
                endpoint="flood_zone",
                elapsed_ms=(time.time() - t0) * 1000,
                status_code=resp.status_code,
                provider_status="OK" if resp.ok else "ERROR",
            )
        if not resp.ok:
            raise ProviderUnavailable(f"NFHL returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedPayload("NFHL returned non-JSON") from exc
        return parse_nfhl_response(data)


def get_flood_assessment(
    client: Optional[FemaFloodClient],
    lat: float,
    lng: float,
    rng: Optional[random.Random] = None,
) -> FloodAssessment:
    """Score the flood zone at a point.  Never raises.

    With no client (simulation mode), no feature at the point, or any
    provider error, returns a synthetic assessment.
    """
    if client is None:
        return synthetic_flood_assessment(rng)
    try:
        attrs = client.fetch_zone(lat, lng)
    except Exception:
        logger.warning(
            "Flood zone lookup failed for (%.4f, %.4f); using simulated assessment",
            lat, lng, exc_info=True,
        )
        return synthetic_flood_assessment(rng)
    if attrs is None:
        logger.info("No NFHL flood zone at (%.4f, %.4f); using simulated assessment", lat, lng)
        return synthetic_flood_assessment(rng)
    return score_flood_zone(attrs)
