"""
Investigator Logging Configuration

Configures structlog with JSON output, investigation context injection and
OpenTelemetry trace correlation.
"""

import logging
from typing import Any, Dict, Optional

import structlog
from opentelemetry import trace


class InvestigatorLogger:
    """
    Structlog configuration shared by every component of the engine.

    Sets up a processor chain that stamps each entry with the active
    investigation context and the current trace/span ids before rendering
    it as JSON (or as console output when structured logging is disabled).
    """

    def __init__(self, level: str = "INFO", structured: bool = True):
        self.level = level.upper()
        self.structured = structured
        self.configure_structlog()

    def configure_structlog(self) -> None:
        """Configure stdlib logging and the structlog processor chain."""
        logging.basicConfig(
            format="%(message)s",
            level=getattr(logging, self.level, logging.INFO),
        )

        renderer = (
            structlog.processors.JSONRenderer()
            if self.structured
            else structlog.dev.ConsoleRenderer()
        )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                self.add_investigation_context,
                self.add_trace_context,
                renderer,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    @staticmethod
    def add_investigation_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Inject the active investigation context into a log entry.

        Fields already present on the entry are left untouched so explicit
        keyword arguments always win over ambient context.
        """
        # Import here to avoid circular imports
        from investigator.infrastructure.logging.coordinator import request_context

        ctx = request_context.get()
        if ctx:
            event_dict.setdefault("correlation_id", ctx.correlation_id)
            if ctx.investigation_id:
                event_dict.setdefault("investigation_id", ctx.investigation_id)
            if ctx.ticket_id:
                event_dict.setdefault("ticket_id", ctx.ticket_id)
            if ctx.agent_phase:
                event_dict.setdefault("agent_phase", ctx.agent_phase)

        return event_dict

    @staticmethod
    def add_trace_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Add OpenTelemetry trace and span ids when a span is recording."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span_context = span.get_span_context()
            event_dict.setdefault("trace_id", format(span_context.trace_id, "032x"))
            event_dict.setdefault("span_id", format(span_context.span_id, "016x"))

        return event_dict


_logger_config: Optional[InvestigatorLogger] = None


def configure_logging(level: str = "INFO", structured: bool = True) -> InvestigatorLogger:
    """(Re)configure logging explicitly, e.g. from settings at startup."""
    global _logger_config
    _logger_config = InvestigatorLogger(level=level, structured=structured)
    return _logger_config


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Configures structlog with defaults on first use if ``configure_logging``
    has not been called yet.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Phase completed", phase="triage", duration_ms=812)
    """
    global _logger_config
    if _logger_config is None:
        _logger_config = InvestigatorLogger()

    return structlog.get_logger(name)
