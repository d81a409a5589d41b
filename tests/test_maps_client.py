"""Tests for GoogleMapsClient: geocoding modes, status handling, and trace
recording in _traced_get."""

from unittest.mock import MagicMock

import pytest
import requests

from area_trace import TraceContext, set_stage, set_trace
from maps_client import GeocodeResult, GoogleMapsClient, parse_coordinates
from provider_errors import GeocodeError, SearchError


def _geocode_ok(lat=41.7637, lng=-72.6851, address="123 Main St, Hartford, CT 06103, USA"):
    return {
        "status": "OK",
        "results": [{
            "geometry": {"location": {"lat": lat, "lng": lng}},
            "formatted_address": address,
        }],
    }


class TestParseCoordinates:
    def test_valid(self):
        assert parse_coordinates("41.7637,-72.6851") == (41.7637, -72.6851)
        assert parse_coordinates(" 41.7637 , -72.6851 ") == (41.7637, -72.6851)

    def test_address_is_not_coordinates(self):
        assert parse_coordinates("Hartford, CT") is None
        assert parse_coordinates("123 Main St") is None

    def test_out_of_range(self):
        assert parse_coordinates("91,0") is None
        assert parse_coordinates("0,181") is None

    def test_wrong_arity(self):
        assert parse_coordinates("1,2,3") is None


class TestGeocode:
    def _make_client(self, response):
        client = GoogleMapsClient("fake-key")
        client._traced_get = MagicMock(return_value=response)
        return client

    def test_address(self):
        client = self._make_client(_geocode_ok())
        result = client.geocode("123 Main St, Hartford, CT")
        assert result == GeocodeResult(41.7637, -72.6851, "123 Main St, Hartford, CT 06103, USA")
        params = client._traced_get.call_args[0][2]
        assert params["address"] == "123 Main St, Hartford, CT"

    def test_coordinate_string_reverse_geocodes(self):
        client = self._make_client(_geocode_ok(lat=41.7640, lng=-72.6850))
        result = client.geocode("41.7637,-72.6851")
        params = client._traced_get.call_args[0][2]
        assert params["latlng"] == "41.7637,-72.6851"
        # Caller's point is kept, not the reverse-geocode hit
        assert (result.lat, result.lng) == (41.7637, -72.6851)
        assert result.formatted_address.endswith("CT 06103, USA")

    def test_coordinate_tuple(self):
        client = self._make_client(_geocode_ok())
        result = client.geocode((41.7637, -72.6851))
        assert "latlng" in client._traced_get.call_args[0][2]
        assert result.lat == 41.7637

    def test_zero_results(self):
        client = self._make_client({"status": "ZERO_RESULTS", "results": []})
        with pytest.raises(GeocodeError, match="ZERO_RESULTS"):
            client.geocode("nowhere at all")

    def test_empty_query(self):
        client = self._make_client(_geocode_ok())
        with pytest.raises(GeocodeError):
            client.geocode("   ")
        client._traced_get.assert_not_called()

    def test_transport_failure_is_geocode_error(self):
        client = GoogleMapsClient("fake-key")
        client._traced_get = MagicMock(side_effect=SearchError("geocode request failed"))
        with pytest.raises(GeocodeError):
            client.geocode("Hartford, CT")

    def test_result_without_location(self):
        client = self._make_client({"status": "OK", "results": [{"formatted_address": "x"}]})
        with pytest.raises(GeocodeError):
            client.geocode("Hartford, CT")

    def test_result_not_an_object(self):
        client = self._make_client({"status": "OK", "results": ["x"]})
        with pytest.raises(GeocodeError):
            client.geocode("Hartford, CT")


class TestPlaces:
    def _make_client(self, response):
        client = GoogleMapsClient("fake-key")
        client._traced_get = MagicMock(return_value=response)
        return client

    def test_nearby_ok(self):
        client = self._make_client({"status": "OK", "results": [{"place_id": "a"}]})
        assert client.places_nearby(41.0, -72.0, "park") == [{"place_id": "a"}]
        params = client._traced_get.call_args[0][2]
        assert params["type"] == "park"
        assert params["radius"] == 1500

    def test_nearby_zero_results(self):
        client = self._make_client({"status": "ZERO_RESULTS"})
        assert client.places_nearby(41.0, -72.0, "park", radius_meters=800) == []

    def test_nearby_denied(self):
        client = self._make_client({"status": "REQUEST_DENIED"})
        with pytest.raises(SearchError):
            client.places_nearby(41.0, -72.0, "park")

    def test_details_ok(self):
        client = self._make_client({"status": "OK", "result": {"rating": 4.5}})
        assert client.place_details("abc") == {"rating": 4.5}
        params = client._traced_get.call_args[0][2]
        assert params["fields"] == "rating,reviews,user_ratings_total,price_level"

    def test_details_error(self):
        client = self._make_client({"status": "INVALID_REQUEST"})
        with pytest.raises(SearchError):
            client.place_details("abc")


class TestTracedGet:
    def _make_client(self):
        client = GoogleMapsClient("fake-key")
        client.session = MagicMock()
        return client

    def test_records_api_call_under_current_stage(self):
        client = self._make_client()
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"status": "OK", "results": []}
        client.session.get.return_value = resp

        ctx = TraceContext(trace_id="t-maps")
        set_trace(ctx)
        set_stage("poi")
        client.places_nearby(41.0, -72.0, "cafe")

        assert len(ctx.api_calls) == 1
        call = ctx.api_calls[0]
        assert call.service == "google_maps"
        assert call.endpoint == "places_nearby"
        assert call.stage == "poi"
        assert call.provider_status == "OK"

    def test_network_error_is_search_error(self):
        client = self._make_client()
        client.session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(SearchError):
            client.places_nearby(41.0, -72.0, "cafe")

    def test_non_json_is_search_error(self):
        client = self._make_client()
        resp = MagicMock(status_code=502)
        resp.json.side_effect = ValueError("not json")
        client.session.get.return_value = resp
        with pytest.raises(SearchError):
            client.places_nearby(41.0, -72.0, "cafe")

    def test_no_trace_is_fine(self):
        client = self._make_client()
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"status": "ZERO_RESULTS"}
        client.session.get.return_value = resp
        assert client.places_nearby(41.0, -72.0, "cafe") == []
