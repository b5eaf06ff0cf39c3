"""tracing.py

Purpose: OpenTelemetry tracing for the investigation engine

Key Components:
--------------------------------------------------------------------------------
  def setup_tracing(settings)
  def start_investigation_span(...) / start_agent_span(...) /
      start_hypothesis_span(...) / start_tool_call_span(...)
  def record_span_error(span, error)
  def inject_trace_context() / extract_trace_context(carrier)

Spans are created through the OpenTelemetry API only; when no SDK provider has
been installed they are non-recording and cost nothing. The exporter is the
collaborator's concern and is wired only when tracing is enabled.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import context as otel_context
from opentelemetry import propagate, trace
from opentelemetry.trace import Span, Status, StatusCode

from investigator.config.settings import ObservabilitySettings

logger = logging.getLogger(__name__)

TRACER_NAME = "investigator"

_provider_installed = False


def setup_tracing(settings: ObservabilitySettings) -> bool:
    """Install an SDK tracer provider with an OTLP exporter when enabled.

    Calling more than once is a no-op.

    Returns:
        True if a provider is installed after the call
    """
    global _provider_installed
    if _provider_installed or not settings.tracing_enabled:
        return _provider_installed

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    exporter_kwargs = {}
    if settings.otlp_endpoint:
        exporter_kwargs["endpoint"] = f"{settings.otlp_endpoint.rstrip('/')}/v1/traces"

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    trace.set_tracer_provider(provider)
    _provider_installed = True

    logger.info(f"OpenTelemetry tracing enabled for service {settings.service_name}")
    return True


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    return trace.get_tracer(name)


def _clean(attributes: Dict[str, Any]) -> Dict[str, Any]:
    # OpenTelemetry rejects None attribute values
    return {key: value for key, value in attributes.items() if value is not None}


@contextmanager
def _start_span(name: str, attributes: Dict[str, Any], parent: Optional[otel_context.Context] = None) -> Iterator[Span]:
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        context=parent,
        attributes=_clean(attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        yield span


def start_investigation_span(
    investigation_id: str,
    ticket_id: str,
    domain: Optional[str] = None,
    parent: Optional[otel_context.Context] = None,
):
    """Root span for one investigation, optionally continuing an upstream trace."""
    return _start_span(
        "investigation.execute",
        {
            "investigation.id": investigation_id,
            "investigation.ticket_id": ticket_id,
            "investigation.domain": domain,
        },
        parent=parent,
    )


def start_phase_span(investigation_id: str, phase: str):
    return _start_span(
        f"investigation.phase.{phase}",
        {"investigation.id": investigation_id, "investigation.phase": phase},
    )


def start_agent_span(agent_name: str, investigation_id: str, domain: Optional[str] = None):
    return _start_span(
        f"agent.{agent_name}",
        {
            "investigation.id": investigation_id,
            "investigation.domain": domain,
            "agent.name": agent_name,
        },
    )


def start_hypothesis_span(investigation_id: str, iteration: int):
    return _start_span(
        "hypothesis.iteration",
        {"investigation.id": investigation_id, "hypothesis.iteration": iteration},
    )


def start_tool_call_span(provider: str, tool_name: str):
    return _start_span(
        f"tool.{tool_name}",
        {"tool.provider": provider, "tool.name": tool_name},
    )


def record_span_error(span: Span, error: BaseException) -> None:
    """Mark ``span`` as errored with the exception attached."""
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))


def inject_trace_context() -> Dict[str, str]:
    """Serialize the current trace context into a job's trace carrier."""
    carrier: Dict[str, str] = {}
    propagate.inject(carrier)
    return carrier


def extract_trace_context(carrier: Optional[Dict[str, str]]) -> Optional[otel_context.Context]:
    """Rebuild a parent context from a job's trace carrier, if it has one."""
    if not carrier:
        return None
    return propagate.extract(carrier)
