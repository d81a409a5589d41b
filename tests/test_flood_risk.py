"""Tests for flood_risk.py: FEMA zone scoring, the synthetic fallback, and
NFHL response parsing."""

import random
from unittest.mock import MagicMock

import pytest
import requests

from flood_risk import (
    FemaFloodClient,
    FloodZoneAttributes,
    flood_risk_level,
    get_flood_assessment,
    parse_nfhl_response,
    score_flood_zone,
    synthetic_flood_assessment,
)
from provider_errors import MalformedPayload, ProviderUnavailable


# =========================================================================
# Zone scoring
# =========================================================================

class TestScoreFloodZone:
    def test_coastal_sfha(self):
        result = score_flood_zone(FloodZoneAttributes(zone_id="VE", is_sfha=True))
        assert result.score == 25
        assert result.risk_level == "High"
        assert result.zone_type == "VE"
        assert result.is_synthetic is False

    def test_minimal_zone(self):
        result = score_flood_zone(FloodZoneAttributes(zone_id="X"))
        assert result.score == 200
        assert result.risk_level == "Minimal"

    def test_shaded_x(self):
        result = score_flood_zone(
            FloodZoneAttributes(zone_id="X", subtype="0.2 PCT ANNUAL CHANCE FLOOD HAZARD")
        )
        assert result.score == 175
        assert result.annual_chance == "0.2% annual chance"

    def test_riverine_with_depth(self):
        result = score_flood_zone(FloodZoneAttributes(zone_id="AE", is_sfha=True, depth=2))
        assert result.score == 40
        assert result.risk_level == "High"

    def test_depth_and_velocity_penalties_capped(self):
        capped = score_flood_zone(FloodZoneAttributes(zone_id="X", depth=100, velocity=100))
        assert capped.score == 150

    def test_score_never_negative(self):
        result = score_flood_zone(
            FloodZoneAttributes(zone_id="VE", is_sfha=True, depth=10, velocity=20)
        )
        assert result.score == 0

    def test_base_flood_elevation_passed_through(self):
        result = score_flood_zone(FloodZoneAttributes(zone_id="AE", base_flood_elevation=12.5))
        assert result.base_flood_elevation == 12.5


class TestFloodRiskLevel:
    @pytest.mark.parametrize("score,expected", [
        (0, "High"),
        (50, "High"),
        (51, "Moderate"),
        (100, "Moderate"),
        (101, "Low"),
        (150, "Low"),
        (151, "Minimal"),
        (200, "Minimal"),
    ])
    def test_bands(self, score, expected):
        assert flood_risk_level(score) == expected


# =========================================================================
# Synthetic fallback
# =========================================================================

class TestSyntheticFloodAssessment:
    def test_flagged_and_in_range(self):
        for seed in range(50):
            result = synthetic_flood_assessment(random.Random(seed))
            assert result.is_synthetic is True
            assert 50 <= result.score <= 200
            assert result.risk_level == flood_risk_level(result.score)

    def test_deterministic_with_seed(self):
        a = synthetic_flood_assessment(random.Random(7))
        b = synthetic_flood_assessment(random.Random(7))
        assert a == b


# =========================================================================
# NFHL parsing
# =========================================================================

def _nfhl(attrs):
    return {"features": [{"attributes": attrs}]}


class TestParseNfhlResponse:
    def test_sfha_zone(self):
        attrs = parse_nfhl_response(_nfhl({
            "FLD_ZONE": "AE", "ZONE_SUBTY": None, "SFHA_TF": "T",
            "STATIC_BFE": 11.0, "DEPTH": -9999, "VELOCITY": -9999,
        }))
        assert attrs.zone_id == "AE"
        assert attrs.is_sfha is True
        assert attrs.base_flood_elevation == 11.0
        assert attrs.depth is None
        assert attrs.velocity is None

    def test_no_features(self):
        assert parse_nfhl_response({"features": []}) is None

    def test_service_error(self):
        with pytest.raises(ProviderUnavailable):
            parse_nfhl_response({"error": {"code": 500}})

    def test_malformed(self):
        with pytest.raises(MalformedPayload):
            parse_nfhl_response("nope")
        with pytest.raises(MalformedPayload):
            parse_nfhl_response({"fields": []})
        with pytest.raises(MalformedPayload):
            parse_nfhl_response(_nfhl({"SFHA_TF": "F"}))


class TestFemaFloodClient:
    def _make_client(self):
        client = FemaFloodClient()
        client.session = MagicMock()
        return client

    def test_fetch_zone_queries_point(self):
        client = self._make_client()
        resp = MagicMock(status_code=200, ok=True)
        resp.json.return_value = _nfhl({"FLD_ZONE": "X", "SFHA_TF": "F"})
        client.session.get.return_value = resp

        attrs = client.fetch_zone(25.77, -80.19)

        assert attrs.zone_id == "X"
        params = client.session.get.call_args[1]["params"]
        assert params["geometry"] == "-80.19,25.77"

    def test_http_error(self):
        client = self._make_client()
        client.session.get.return_value = MagicMock(status_code=502, ok=False)
        with pytest.raises(ProviderUnavailable):
            client.fetch_zone(25.77, -80.19)

    def test_network_error(self):
        client = self._make_client()
        client.session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ProviderUnavailable):
            client.fetch_zone(25.77, -80.19)


class TestGetFloodAssessment:
    def test_no_client_is_synthetic(self):
        assert get_flood_assessment(None, 25.0, -80.0).is_synthetic is True

    def test_provider_error_is_synthetic(self):
        client = MagicMock()
        client.fetch_zone.side_effect = ProviderUnavailable("down")
        assert get_flood_assessment(client, 25.0, -80.0).is_synthetic is True

    def test_no_feature_is_synthetic(self):
        client = MagicMock()
        client.fetch_zone.return_value = None
        assert get_flood_assessment(client, 25.0, -80.0).is_synthetic is True

    def test_real_zone(self):
        client = MagicMock()
        client.fetch_zone.return_value = FloodZoneAttributes(zone_id="VE", is_sfha=True)
        result = get_flood_assessment(client, 25.0, -80.0)
        assert result.is_synthetic is False
        assert result.score == 25
