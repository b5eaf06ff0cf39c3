"""metrics.py

Purpose: Prometheus metrics for the investigation engine

Collectors are module-level, registered once on import in the default
registry. Components call the small ``record_*`` helpers rather than touching
collectors directly so label sets stay consistent.
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


# Investigations
INVESTIGATIONS_TOTAL = Counter(
    "investigator_investigations_total",
    "Investigations processed, by terminal status",
    ["status"],
)

INVESTIGATION_DURATION = Histogram(
    "investigator_investigation_duration_seconds",
    "End-to-end investigation duration in seconds",
    ["status"],
    buckets=(30, 60, 120, 300, 600, 1200, 1800, 3600),
)

INVESTIGATION_VERDICT = Counter(
    "investigator_investigation_verdict_total",
    "Investigation verdicts delivered",
    ["verdict"],
)

PHASE_DURATION = Histogram(
    "investigator_phase_duration_seconds",
    "Phase duration in seconds",
    ["phase"],
)

# Agents
AGENT_INVOCATIONS = Counter(
    "investigator_agent_invocations_total",
    "Agent dispatches, by outcome",
    ["agent", "status"],
)

AGENT_DURATION = Histogram(
    "investigator_agent_duration_seconds",
    "Agent run duration in seconds",
    ["agent"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600),
)

AGENT_TOKENS = Counter(
    "investigator_agent_tokens_total",
    "Tokens consumed by agents",
    ["agent", "direction"],
)

# Tool providers
TOOL_CALLS = Counter(
    "investigator_tool_calls_total",
    "Tool provider calls, by outcome",
    ["provider", "operation", "status"],
)

TOOL_CALL_DURATION = Histogram(
    "investigator_tool_call_duration_seconds",
    "Tool provider call duration in seconds",
    ["provider", "operation"],
)

CIRCUIT_OPENED = Counter(
    "investigator_circuit_breaker_opened_total",
    "Times a provider circuit breaker transitioned to open",
    ["provider"],
)

# Hypothesis loop
HYPOTHESIS_ITERATIONS = Histogram(
    "investigator_hypothesis_iterations",
    "Hypothesis loop iterations per investigation",
    buckets=(1, 2, 3, 4, 5, 7, 10),
)

HYPOTHESIS_CONFIDENCE = Histogram(
    "investigator_hypothesis_confidence",
    "Confidence of the accepted hypothesis",
    buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
)

# Queue
QUEUE_DEPTH = Gauge(
    "investigator_queue_depth",
    "Jobs waiting in the investigation queue",
    ["queue"],
)

ACTIVE_WORKERS = Gauge(
    "investigator_active_workers",
    "Workers currently processing an investigation",
)


def record_investigation(status: str, duration_seconds: float) -> None:
    INVESTIGATIONS_TOTAL.labels(status=status).inc()
    INVESTIGATION_DURATION.labels(status=status).observe(duration_seconds)


def record_agent_run(agent: str, status: str, duration_seconds: float,
                     input_tokens: int = 0, output_tokens: int = 0) -> None:
    AGENT_INVOCATIONS.labels(agent=agent, status=status).inc()
    AGENT_DURATION.labels(agent=agent).observe(duration_seconds)
    if input_tokens:
        AGENT_TOKENS.labels(agent=agent, direction="input").inc(input_tokens)
    if output_tokens:
        AGENT_TOKENS.labels(agent=agent, direction="output").inc(output_tokens)


def record_tool_call(provider: str, operation: str, status: str, duration_seconds: Optional[float] = None) -> None:
    TOOL_CALLS.labels(provider=provider, operation=operation, status=status).inc()
    if duration_seconds is not None:
        TOOL_CALL_DURATION.labels(provider=provider, operation=operation).observe(duration_seconds)


def record_hypothesis_outcome(iterations: int, confidence: float) -> None:
    HYPOTHESIS_ITERATIONS.observe(iterations)
    HYPOTHESIS_CONFIDENCE.observe(confidence)


def start_metrics_server(port: int) -> None:
    """Expose ``/metrics`` on ``port`` from a background thread."""
    start_http_server(port)
    logger.info(f"Prometheus metrics server listening on port {port}")
