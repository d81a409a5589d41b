"""Unit tests for area_trace.py: request-scoped tracing.

Tests cover: TraceContext lifecycle, stage recording, API call
attribution, summary computation, serialization, and thread-local storage.
"""

import time
import threading

import pytest

from area_trace import (
    APICallRecord,
    StageRecord,
    TraceContext,
    clear_trace,
    get_trace,
    set_stage,
    set_trace,
)


# =========================================================================
# TraceContext basics
# =========================================================================

class TestTraceContextInit:
    def test_defaults(self):
        ctx = TraceContext(trace_id="test-1")
        assert ctx.trace_id == "test-1"
        assert ctx.stages == []
        assert ctx.api_calls == []
        assert ctx.model_version == ""
        assert ctx.request_start > 0


# =========================================================================
# Stage recording
# =========================================================================

class TestStageRecording:
    def test_record_stage(self):
        ctx = TraceContext(trace_id="test-1")
        ctx.record_stage("geocode", 1000.0, 1000.5)

        assert len(ctx.stages) == 1
        assert ctx.stages[0].stage_name == "geocode"
        assert ctx.stages[0].elapsed_ms == 500
        assert ctx.stages[0].degraded is False
        assert ctx.stages[0].error_class == ""

    def test_record_degraded_stage(self):
        ctx = TraceContext(trace_id="test-1")
        ctx.record_stage("crime", time.time(), time.time(), degraded=True)
        assert ctx.stages[0].degraded is True

    def test_record_error_stage(self):
        ctx = TraceContext(trace_id="test-1")
        ctx.record_stage(
            "flood", time.time(), time.time(),
            error_class="ProviderUnavailable", error_message="NFHL returned 503",
        )
        assert ctx.stages[0].error_class == "ProviderUnavailable"

    def test_counts_api_calls_in_stage(self):
        ctx = TraceContext(trace_id="test-1")
        set_stage("poi")
        ctx.record_api_call("google_maps", "places_nearby", 120, 200, "OK")
        ctx.record_api_call("google_maps", "places_nearby", 90, 200, "ZERO_RESULTS")
        set_stage("crime")
        ctx.record_api_call("fbi_cde", "agencies_geocoded", 300, 200)

        ctx.record_stage("poi", 0.0, 1.0)
        assert ctx.stages[0].api_calls_made == 2


class TestAPICallRecording:
    def test_stage_attribution_is_per_thread(self):
        ctx = TraceContext(trace_id="test-1")
        set_stage("poi")

        def worker():
            set_stage("flood")
            ctx.record_api_call("fema_nfhl", "flood_zone", 50, 200, "OK")

        t = threading.Thread(target=worker)
        t.start()
        t.join()
        ctx.record_api_call("google_maps", "geocode", 40, 200, "OK")

        stages = {c.service: c.stage for c in ctx.api_calls}
        assert stages == {"fema_nfhl": "flood", "google_maps": "poi"}

    def test_elapsed_truncated_to_int(self):
        ctx = TraceContext(trace_id="test-1")
        ctx.record_api_call("google_maps", "geocode", 12.9, 200)
        assert ctx.api_calls[0].elapsed_ms == 12
        assert isinstance(ctx.api_calls[0], APICallRecord)


# =========================================================================
# Summary
# =========================================================================

class TestSummary:
    def test_empty(self):
        assert TraceContext(trace_id="t").summary_dict()["final_outcome"] == "empty"

    def test_success(self):
        ctx = TraceContext(trace_id="t", model_version="1.0.0")
        ctx.record_stage("geocode", 0.0, 0.1)
        ctx.record_stage("poi", 0.0, 0.1)
        s = ctx.summary_dict()
        assert s["final_outcome"] == "success"
        assert s["stages_completed"] == 2
        assert s["model_version"] == "1.0.0"

    def test_partial_when_degraded(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("geocode", 0.0, 0.1)
        ctx.record_stage("crime", 0.0, 0.1, degraded=True)
        s = ctx.summary_dict()
        assert s["final_outcome"] == "partial"
        assert s["stages_degraded"] == 1

    def test_partial_when_some_errored(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("geocode", 0.0, 0.1)
        ctx.record_stage("crime", 0.0, 0.1, error_class="RuntimeError")
        assert ctx.summary_dict()["final_outcome"] == "partial"

    def test_error_when_all_errored(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("geocode", 0.0, 0.1, error_class="GeocodeError")
        s = ctx.summary_dict()
        assert s["final_outcome"] == "error"
        assert s["stages_errored"] == 1

    def test_no_model_version_key_when_unset(self):
        ctx = TraceContext(trace_id="t")
        assert "model_version" not in ctx.summary_dict()

    def test_log_summary_does_not_raise(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("geocode", 0.0, 0.1)
        ctx.log_summary()


class TestStagesToList:
    def test_serializes(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("geocode", 0.0, 0.25)
        ctx.record_stage("flood", 0.0, 0.1, error_class="MalformedPayload", error_message="bad")
        out = ctx.stages_to_list()
        assert out[0] == {
            "stage": "geocode", "elapsed_ms": 250, "api_calls": 0,
            "degraded": False, "error": None,
        }
        assert out[1]["error"] == "MalformedPayload: bad"


# =========================================================================
# Thread-local storage
# =========================================================================

class TestThreadLocal:
    def test_set_get_clear(self):
        ctx = TraceContext(trace_id="t")
        set_trace(ctx)
        assert get_trace() is ctx
        clear_trace()
        assert get_trace() is None

    def test_not_visible_from_other_thread(self):
        set_trace(TraceContext(trace_id="main"))
        seen = []
        t = threading.Thread(target=lambda: seen.append(get_trace()))
        t.start()
        t.join()
        assert seen == [None]

    def test_stage_record_type(self):
        ctx = TraceContext(trace_id="t")
        ctx.record_stage("poi", 0.0, 0.1)
        assert isinstance(ctx.stages[0], StageRecord)
