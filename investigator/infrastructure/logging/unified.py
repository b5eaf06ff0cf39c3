"""
Investigator Unified Logging

Layer-tagged logger with operation timing, metric and event helpers, used by
the engine's core and infrastructure components.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional, Union

from investigator.infrastructure.logging.config import get_logger
from investigator.infrastructure.logging.coordinator import request_context


VALID_LAYERS = {"core", "infrastructure", "service"}


class UnifiedLogger:
    """
    Unified logger providing consistent patterns across the engine's layers.

    Attributes:
        logger_name: Name of the logger instance
        layer: Application layer (core, infrastructure, service)
        logger: Underlying structlog logger
    """

    def __init__(self, logger_name: str, layer: str):
        self.logger_name = logger_name
        self.layer = layer
        self.logger = get_logger(logger_name)

    @asynccontextmanager
    async def operation(
        self,
        operation_name: str,
        **context_fields
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Log start, completion or failure of an async operation with timing.

        The yielded dictionary can be updated by the caller; its contents are
        included in the completion entry. Exceptions are logged and re-raised.

        Example:
            >>> async with logger.operation("run_phase", phase="triage") as ctx:
            ...     output = await dispatch()
            ...     ctx["output_chars"] = len(output)
        """
        start_time = time.monotonic()
        operation_key = f"{self.layer}.operation.{operation_name}"
        operation_context = {
            "operation": operation_name,
            "layer": self.layer,
            "start_time": datetime.now(timezone.utc).isoformat(),
            **context_fields
        }

        self.logger.info(
            f"Operation started: {operation_name}",
            event_type="operation_start",
            operation_key=operation_key,
            **operation_context
        )

        try:
            yield operation_context
        except Exception as error:
            duration = time.monotonic() - start_time
            self.logger.error(
                f"Operation failed: {operation_name}",
                event_type="operation_error",
                operation_key=operation_key,
                error_message=str(error),
                error_type=type(error).__name__,
                duration_seconds=duration,
                **operation_context
            )
            raise
        else:
            operation_context["duration_seconds"] = time.monotonic() - start_time
            self.logger.info(
                f"Operation completed: {operation_name}",
                event_type="operation_end",
                operation_key=operation_key,
                **operation_context
            )

    def log_metric(
        self,
        metric_name: str,
        value: Union[int, float],
        unit: str = "count",
        tags: Optional[Dict[str, str]] = None,
        **extra_fields
    ) -> None:
        """Log a metric value alongside its unit and optional tags."""
        metric_data = {
            "event_type": "metric",
            "layer": self.layer,
            "metric_name": metric_name,
            "metric_value": value,
            "metric_unit": unit,
            **extra_fields
        }
        if tags:
            metric_data["metric_tags"] = tags

        self.logger.info(f"Metric recorded: {metric_name}={value} {unit}", **metric_data)

    def log_event(
        self,
        event_type: str,
        event_name: str,
        severity: str = "info",
        data: Optional[Dict[str, Any]] = None,
        **extra_fields
    ) -> None:
        """
        Log a business or technical event.

        Args:
            event_type: Type of event (business, technical, system)
            event_name: Specific name of the event
            severity: debug, info, warning, error or critical
            data: Optional event payload
            **extra_fields: Additional fields to include
        """
        event_data = {
            "event_type": "application_event",
            "layer": self.layer,
            "app_event_type": event_type,
            "event_name": event_name,
            "event_severity": severity,
            **extra_fields
        }
        if data:
            event_data["event_data"] = data

        log_method = getattr(self.logger, severity, self.logger.info)
        log_method(f"Event: {event_type}.{event_name}", **event_data)

    def debug(self, message: str, **extra_fields) -> None:
        self.logger.debug(message, layer=self.layer, **extra_fields)

    def info(self, message: str, **extra_fields) -> None:
        self.logger.info(message, layer=self.layer, **extra_fields)

    def warning(self, message: str, **extra_fields) -> None:
        self.logger.warning(message, layer=self.layer, **extra_fields)

    def error(self, message: str, error: Optional[Exception] = None, **extra_fields) -> None:
        """Log an error, attaching type and message of ``error`` when given."""
        error_data = {"layer": self.layer, **extra_fields}
        if error:
            error_data.update({
                "error_message": str(error),
                "error_type": type(error).__name__
            })
        ctx = request_context.get()
        if ctx is not None and ctx.agent_phase and "agent_phase" not in error_data:
            error_data["agent_phase"] = ctx.agent_phase
        self.logger.error(message, **error_data)


_logger_instances: Dict[str, UnifiedLogger] = {}


def get_unified_logger(name: str, layer: str) -> UnifiedLogger:
    """
    Get or create a cached unified logger for ``name`` and ``layer``.

    Raises:
        ValueError: If ``layer`` is not one of the known layers
    """
    if layer not in VALID_LAYERS:
        raise ValueError(f"Invalid layer '{layer}'. Must be one of: {VALID_LAYERS}")

    cache_key = f"{name}:{layer}"
    if cache_key not in _logger_instances:
        _logger_instances[cache_key] = UnifiedLogger(name, layer)

    return _logger_instances[cache_key]


def clear_logger_cache() -> None:
    """Clear cached logger instances (used by tests)."""
    _logger_instances.clear()
