"""
Google Maps client for geocoding, nearby search, and place details.

One client per thread: requests.Session is not thread-safe, so the
evaluator builds a fresh client inside every worker.
"""

import time
import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict, Union

import requests

from area_trace import get_trace
from provider_errors import GeocodeError, SearchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    formatted_address: str


def parse_coordinates(text: str) -> Optional[Tuple[float, float]]:
    """Parse a ``"lat,lng"`` string.  Returns None for anything else."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 2:
        return None
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


class GoogleMapsClient:
    """Client for Google Maps APIs"""

    # Per-call timeout in seconds.  Keeps any single request from hanging
    # the whole evaluation.  p99 for Google Maps is under 2 s.
    DEFAULT_TIMEOUT = 10

    def __init__(self, api_key: str):
        self.api_key = api_key
        self.base_url = "https://maps.googleapis.com/maps/api"
        self.session = requests.Session()
        self.session.trust_env = False

    def _traced_get(self, endpoint_name: str, url: str, params: dict) -> dict:
        """GET request with automatic trace recording.

        Transport failures are raised as SearchError; callers that need a
        different error type (geocode) re-wrap it.
        """
        t0 = time.time()
        try:
            response = self.session.get(url, params=params, timeout=self.DEFAULT_TIMEOUT)
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SearchError(f"{endpoint_name} request failed: {exc}") from exc
        elapsed_ms = int((time.time() - t0) * 1000)
        provider_status = data.get("status", "") if isinstance(data, dict) else ""
        trace = get_trace()
        if trace:
            trace.record_api_call(
                service="google_maps",
                endpoint=endpoint_name,
                elapsed_ms=elapsed_ms,
                status_code=response.status_code,
                provider_status=provider_status,
            )
        if not isinstance(data, dict):
            raise SearchError(f"{endpoint_name} returned a non-object body")
        return data

    def geocode(self, query: Union[str, Tuple[float, float]]) -> GeocodeResult:
        """Resolve an address, or reverse-geocode a (lat, lng) pair.

        A ``"lat,lng"`` string is treated as coordinates.
        """
        url = f"{self.base_url}/geocode/json"
        if isinstance(query, str):
            coords = parse_coordinates(query)
        else:
            coords = query

        if coords is not None:
            params = {"latlng": f"{coords[0]},{coords[1]}", "key": self.api_key}
        else:
            if not query or not query.strip():
                raise GeocodeError("Please enter an address or coordinates")
            params = {"address": query, "key": self.api_key}

        try:
            data = self._traced_get("geocode", url, params)
        except SearchError as exc:
            raise GeocodeError(str(exc)) from exc

        if data.get("status") != "OK" or not data.get("results"):
            raise GeocodeError(f"Geocoding failed: {data.get('status')}")

        top = data["results"][0]
        if not isinstance(top, dict):
            raise GeocodeError("Geocoding result is not an object")
        if coords is not None:
            # Keep the caller's point; the reverse-geocode hit may be offset.
            lat, lng = coords
        else:
            try:
                location = top["geometry"]["location"]
                lat, lng = location["lat"], location["lng"]
            except (KeyError, TypeError) as exc:
                raise GeocodeError("Geocoding result has no location") from exc
        return GeocodeResult(
            lat=lat,
            lng=lng,
            formatted_address=top.get("formatted_address", ""),
        )

    def places_nearby(
        self,
        lat: float,
        lng: float,
        place_type: str,
        radius_meters: int = 1500,
    ) -> List[Dict]:
        """Search for places near a location.  ZERO_RESULTS is an empty list."""
        url = f"{self.base_url}/place/nearbysearch/json"
        params = {
            "location": f"{lat},{lng}",
            "radius": radius_meters,
            "type": place_type,
            "key": self.api_key
        }
        data = self._traced_get("places_nearby", url, params)

        if data.get("status") not in ["OK", "ZERO_RESULTS"]:
            raise SearchError(f"Places search failed: {data.get('status')}")

        return data.get("results", [])

    def place_details(self, place_id: str, fields: Optional[List[str]] = None) -> Dict:
        """Get detailed information about a place"""
        url = f"{self.base_url}/place/details/json"
        default_fields = [
            "rating",
            "reviews",
            "user_ratings_total",
            "price_level",
        ]
        params = {
            "place_id": place_id,
            "fields": ",".join(fields or default_fields),
            "key": self.api_key
        }
        data = self._traced_get("place_details", url, params)

        if data.get("status") != "OK":
            raise SearchError(f"Place details failed: {data.get('status')}")

        return data.get("result", {})
