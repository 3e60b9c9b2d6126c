"""
Pipeline telemetry (Prometheus).

Covers stage degradations, cache effectiveness, ledger writes and
collaborator (provider / LLM) traffic.
"""

from matchoracle.telemetry.metrics import (
    stage_degraded_total,
    cache_requests_total,
    analysis_duration_ms,
    ledger_writes_total,
    provider_requests_total,
    provider_latency_ms,
    llm_requests_total,
    record_stage_degraded,
    record_cache_lookup,
    record_ledger_write,
    record_provider_request,
    record_llm_request,
    observe_analysis_duration,
    get_metrics_text,
)

__all__ = [
    "stage_degraded_total",
    "cache_requests_total",
    "analysis_duration_ms",
    "ledger_writes_total",
    "provider_requests_total",
    "provider_latency_ms",
    "llm_requests_total",
    "record_stage_degraded",
    "record_cache_lookup",
    "record_ledger_write",
    "record_provider_request",
    "record_llm_request",
    "observe_analysis_duration",
    "get_metrics_text",
]
