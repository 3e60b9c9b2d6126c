"""
Prometheus metrics for the prediction pipeline.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

=============================================================================
CARDINALITY CONTROL
=============================================================================

ALLOWED LABELS (bounded sets):
- stage:     "standings", "trinity", "tesseract", "llmgrade", "adjust",
             "ledger", "oracle", "intel"
- reason:    "missing_keys", "not_found", "exception", "fallback",
             "not_configured", "malformed", "timeout", "invalid",
             plus the intel branch names ("head_to_head", "home_form", ...)
- cache:     "trinity", "llmgrade", "intel"
- result:    "hit", "miss" / "ok", "invalid", "error", "dropped"
- provider:  "api_football", "gemini"
- endpoint:  "standings", "fixtures", "fixtures/statistics", "injuries", ...
- purpose:   "trinity", "llmgrade", "sentiment"
- entry:     "oracle", "context_adjusted"

FORBIDDEN AS LABELS: fixture ids, team ids, team names, error messages.
Use logs for per-match debugging.
=============================================================================
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PIPELINE METRICS
# =============================================================================

stage_degraded_total = Counter(
    "matchoracle_stage_degraded_total",
    "Pipeline stages that fell back to a degraded default",
    ["stage", "reason"],
)

cache_requests_total = Counter(
    "matchoracle_cache_requests_total",
    "Cache lookups by cache and result",
    ["cache", "result"],
)

analysis_duration_ms = Histogram(
    "matchoracle_analysis_duration_ms",
    "End-to-end analysis latency in milliseconds",
    ["entry"],
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
)

# =============================================================================
# LEDGER METRICS
# =============================================================================

ledger_writes_total = Counter(
    "matchoracle_ledger_writes_total",
    "Prediction ledger writes by result",
    ["result"],
)

# =============================================================================
# COLLABORATOR METRICS
# =============================================================================

provider_requests_total = Counter(
    "matchoracle_provider_requests_total",
    "Sports-data provider requests by endpoint and status",
    ["provider", "endpoint", "status"],
)

provider_latency_ms = Histogram(
    "matchoracle_provider_latency_ms",
    "Sports-data provider latency in milliseconds",
    ["provider", "endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

llm_requests_total = Counter(
    "matchoracle_llm_requests_total",
    "LLM requests by purpose and status",
    ["purpose", "status"],
)


# =============================================================================
# HELPERS
# =============================================================================


def record_stage_degraded(stage: str, reason: str) -> None:
    """Record a stage falling back to its documented default."""
    try:
        stage_degraded_total.labels(stage=stage, reason=reason).inc()
    except Exception as e:
        logger.warning(f"Failed to record stage degradation metric: {e}")


def record_cache_lookup(cache: str, hit: bool) -> None:
    try:
        cache_requests_total.labels(cache=cache, result="hit" if hit else "miss").inc()
    except Exception as e:
        logger.warning(f"Failed to record cache metric: {e}")


def record_ledger_write(result: str) -> None:
    """result: ok | invalid | error | dropped"""
    try:
        ledger_writes_total.labels(result=result).inc()
    except Exception as e:
        logger.warning(f"Failed to record ledger metric: {e}")


def record_provider_request(
    provider: str,
    endpoint: str,
    status: int,
    latency_ms: float,
) -> None:
    """Record a provider request with its latency."""
    try:
        provider_requests_total.labels(
            provider=provider,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        provider_latency_ms.labels(provider=provider, endpoint=endpoint).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_llm_request(purpose: str, status: str) -> None:
    """status mirrors GeminiResult.status (COMPLETED, ERROR, TIMEOUT) or PARSE_ERROR."""
    try:
        llm_requests_total.labels(purpose=purpose, status=status).inc()
    except Exception as e:
        logger.warning(f"Failed to record LLM metric: {e}")


def observe_analysis_duration(entry: str, duration_ms: float) -> None:
    try:
        analysis_duration_ms.labels(entry=entry).observe(duration_ms)
    except Exception as e:
        logger.warning(f"Failed to record analysis duration: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
