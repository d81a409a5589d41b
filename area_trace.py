"""
Request-scoped tracing for AreaScore evaluations.

Provides a thread-local TraceContext that records:
  - Per-stage timing (stage_name, elapsed_ms, api_calls, errors, degraded flag)
  - Per-outbound-call timing (service, endpoint, elapsed_ms, status, provider status)
  - End-of-request summary (total_elapsed, total_api_calls, outcome)

Usage:
    from area_trace import TraceContext, get_trace, set_trace, clear_trace

    ctx = TraceContext(trace_id=request_id)
    set_trace(ctx)
    ...
    ctx.log_summary()
    clear_trace()

    # In API clients:
    trace = get_trace()
    if trace:
        trace.record_api_call(...)
"""

import time
import threading
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

logger = logging.getLogger(__name__)


# =============================================================================
# Data classes for trace records
# =============================================================================

@dataclass
class APICallRecord:
    """One outbound HTTP call (Google Maps, FBI CDE, FEMA NFHL)."""
    service: str          # "google_maps" | "fbi_cde" | "fema_nfhl"
    endpoint: str         # "geocode", "places_nearby", etc.
    elapsed_ms: int
    status_code: int
    provider_status: str = ""   # e.g. Google "OK", "ZERO_RESULTS"
    stage: str = ""             # which evaluation stage was running


@dataclass
class StageRecord:
    """One evaluation stage (geocode, poi, crime, market_heat, ...)."""
    stage_name: str
    elapsed_ms: int = 0
    api_calls_made: int = 0
    degraded: bool = False      # stage returned a fallback or synthetic value
    error_class: str = ""
    error_message: str = ""


# =============================================================================
# Trace context
# =============================================================================

@dataclass
class TraceContext:
    """Accumulates timing data for a single evaluation request."""
    trace_id: str
    request_start: float = field(default_factory=time.time)
    stages: List[StageRecord] = field(default_factory=list)
    api_calls: List[APICallRecord] = field(default_factory=list)
    model_version: str = ""

    def record_stage(
        self,
        stage_name: str,
        start_ts: float,
        end_ts: float,
        degraded: bool = False,
        error_class: str = "",
        error_message: str = "",
    ):
        api_in_stage = sum(1 for c in self.api_calls if c.stage == stage_name)
        rec = StageRecord(
            stage_name=stage_name,
            elapsed_ms=int((end_ts - start_ts) * 1000),
            api_calls_made=api_in_stage,
            degraded=degraded,
            error_class=error_class,
            error_message=error_message,
        )
        self.stages.append(rec)

        status = "ERR" if error_class else ("DEGRADED" if degraded else "OK")
        err_info = f" err={error_class}: {error_message}" if error_class else ""
        logger.info(
            "  [stage] trace=%s %s %s %dms api_calls=%d%s",
            self.trace_id,
            stage_name,
            status,
            rec.elapsed_ms,
            api_in_stage,
            err_info,
        )

    def record_api_call(
        self,
        service: str,
        endpoint: str,
        elapsed_ms: int,
        status_code: int,
        provider_status: str = "",
    ):
        # Stages run on worker threads that share one context, so the
        # stage name is read from thread-local storage.
        stage = getattr(_trace_local, "stage", "")
        rec = APICallRecord(
            service=service,
            endpoint=endpoint,
            elapsed_ms=int(elapsed_ms),
            status_code=status_code,
            provider_status=provider_status,
            stage=stage,
        )
        self.api_calls.append(rec)
        logger.debug(
            "  [api] trace=%s stage=%s svc=%s ep=%s ms=%d http=%d provider=%s",
            self.trace_id,
            stage or "-",
            service,
            endpoint,
            rec.elapsed_ms,
            status_code,
            provider_status,
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summary_dict(self) -> Dict[str, Any]:
        """Return a summary dict suitable for logging and JSON output."""
        total_elapsed = int((time.time() - self.request_start) * 1000)
        errored = [s for s in self.stages if s.error_class]
        degraded = [s for s in self.stages if s.degraded and not s.error_class]
        completed = [s for s in self.stages if not s.error_class]

        if errored and not completed:
            outcome = "error"
        elif not self.stages:
            outcome = "empty"
        elif errored or degraded:
            outcome = "partial"
        else:
            outcome = "success"

        result = {
            "trace_id": self.trace_id,
            "total_elapsed_ms": total_elapsed,
            "total_api_calls": len(self.api_calls),
            "stages_completed": len(completed),
            "stages_degraded": len(degraded),
            "stages_errored": len(errored),
            "final_outcome": outcome,
        }
        if self.model_version:
            result["model_version"] = self.model_version
        return result

    def log_summary(self):
        """Emit a single structured summary log line."""
        s = self.summary_dict()
        logger.info(
            "[trace-summary] trace=%s total_ms=%d api_calls=%d "
            "completed=%d degraded=%d errored=%d outcome=%s",
            s["trace_id"],
            s["total_elapsed_ms"],
            s["total_api_calls"],
            s["stages_completed"],
            s["stages_degraded"],
            s["stages_errored"],
            s["final_outcome"],
        )

    def stages_to_list(self) -> List[Dict[str, Any]]:
        return [
            {
                "stage": s.stage_name,
                "elapsed_ms": s.elapsed_ms,
                "api_calls": s.api_calls_made,
                "degraded": s.degraded,
                "error": (
                    f"{s.error_class}: {s.error_message}"
                    if s.error_class else None
                ),
            }
            for s in self.stages
        ]


# =============================================================================
# Thread-local storage
# =============================================================================

_trace_local = threading.local()


def get_trace() -> Optional[TraceContext]:
    """Get the current request's trace context, or None."""
    return getattr(_trace_local, "ctx", None)


def set_trace(ctx: Optional[TraceContext]):
    """Set the trace context for the current thread."""
    _trace_local.ctx = ctx


def set_stage(name: str):
    """Attribute API calls made by the current thread to *name*."""
    _trace_local.stage = name


def clear_trace():
    """Clear the current trace context."""
    _trace_local.ctx = None
    _trace_local.stage = ""
