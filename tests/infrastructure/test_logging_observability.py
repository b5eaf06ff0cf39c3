"""Tests for the logging context, unified logger and observability helpers."""

import asyncio
from unittest.mock import Mock

import pytest
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY

from investigator.config.settings import ObservabilitySettings
from investigator.infrastructure.logging.config import InvestigatorLogger
from investigator.infrastructure.logging.coordinator import RequestContext, request_context, set_phase
from investigator.infrastructure.logging.unified import UnifiedLogger, get_unified_logger
from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import (
    extract_trace_context,
    inject_trace_context,
    record_span_error,
    setup_tracing,
    start_agent_span,
)


class TestRequestContext:

    def test_context_is_scoped(self):
        assert request_context.get() is None

        with RequestContext(investigation_id="inv-001", ticket_id="OPS-1") as ctx:
            assert request_context.get() is ctx
            set_phase("triage")
            assert ctx.agent_phase == "triage"

        assert request_context.get() is None

    def test_nested_contexts_restore_outer(self):
        with RequestContext(investigation_id="outer") as outer:
            with RequestContext(investigation_id="inner"):
                assert request_context.get().investigation_id == "inner"
            assert request_context.get() is outer

    def test_set_phase_without_context_is_noop(self):
        set_phase("gather")
        assert request_context.get() is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_separate_contexts(self):
        seen = {}

        async def work(investigation_id):
            with RequestContext(investigation_id=investigation_id):
                await asyncio.sleep(0)
                seen[investigation_id] = request_context.get().investigation_id

        await asyncio.gather(work("a"), work("b"))

        assert seen == {"a": "a", "b": "b"}

    def test_logged_operation_tracking(self):
        ctx = RequestContext()
        assert not ctx.has_logged("core.operation.dispatch")
        ctx.mark_logged("core.operation.dispatch")
        assert ctx.has_logged("core.operation.dispatch")


class TestLogProcessors:

    def test_investigation_fields_injected(self):
        with RequestContext(investigation_id="inv-001", ticket_id="OPS-1", agent_phase="gather") as ctx:
            event = InvestigatorLogger.add_investigation_context(None, "info", {"event": "x"})

        assert event["investigation_id"] == "inv-001"
        assert event["ticket_id"] == "OPS-1"
        assert event["agent_phase"] == "gather"
        assert event["correlation_id"] == ctx.correlation_id

    def test_explicit_fields_win(self):
        with RequestContext(investigation_id="inv-001"):
            event = InvestigatorLogger.add_investigation_context(None, "info", {"investigation_id": "explicit"})

        assert event["investigation_id"] == "explicit"

    def test_no_context_leaves_entry_alone(self):
        assert InvestigatorLogger.add_investigation_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_no_recording_span_adds_no_trace_ids(self):
        event = InvestigatorLogger.add_trace_context(None, "info", {"event": "x"})
        assert "trace_id" not in event


class TestUnifiedLogger:

    def test_cached_per_name_and_layer(self):
        first = get_unified_logger("investigator.core.engine", "core")
        assert get_unified_logger("investigator.core.engine", "core") is first
        assert get_unified_logger("investigator.core.engine", "infrastructure") is not first

    def test_rejects_unknown_layer(self):
        with pytest.raises(ValueError, match="Invalid layer"):
            get_unified_logger("x", "presentation")

    def test_error_attaches_error_and_phase(self):
        unified = UnifiedLogger("test", "core")
        unified.logger = Mock()

        with RequestContext(agent_phase="analyze"):
            unified.error("Agent failed", error=RuntimeError("boom"), agent="analyze")

        _, kwargs = unified.logger.error.call_args
        assert kwargs["error_message"] == "boom"
        assert kwargs["error_type"] == "RuntimeError"
        assert kwargs["agent_phase"] == "analyze"
        assert kwargs["layer"] == "core"

    def test_log_event_uses_severity(self):
        unified = UnifiedLogger("test", "infrastructure")
        unified.logger = Mock()

        unified.log_event("technical", "circuit_breaker_opened", "warning", {"provider": "grafana"})

        _, kwargs = unified.logger.warning.call_args
        assert kwargs["event_name"] == "circuit_breaker_opened"
        assert kwargs["event_data"] == {"provider": "grafana"}

    def test_log_metric(self):
        unified = UnifiedLogger("test", "core")
        unified.logger = Mock()

        unified.log_metric("phase_duration", 120, unit="ms", tags={"phase": "triage"})

        _, kwargs = unified.logger.info.call_args
        assert kwargs["metric_value"] == 120
        assert kwargs["metric_unit"] == "ms"
        assert kwargs["metric_tags"] == {"phase": "triage"}

    @pytest.mark.asyncio
    async def test_operation_logs_completion(self):
        unified = UnifiedLogger("test", "core")
        unified.logger = Mock()

        async with unified.operation("run_phase", phase="triage") as ctx:
            ctx["output_chars"] = 12

        end_kwargs = unified.logger.info.call_args_list[-1].kwargs
        assert end_kwargs["event_type"] == "operation_end"
        assert end_kwargs["output_chars"] == 12
        assert "duration_seconds" in end_kwargs

    @pytest.mark.asyncio
    async def test_operation_reraises(self):
        unified = UnifiedLogger("test", "core")
        unified.logger = Mock()

        with pytest.raises(KeyError):
            async with unified.operation("run_phase"):
                raise KeyError("missing")

        assert unified.logger.error.call_args.kwargs["error_type"] == "KeyError"


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsHelpers:

    def test_agent_run_counts_tokens(self):
        before = sample("investigator_agent_tokens_total", agent="metrics-probe", direction="input")

        metrics.record_agent_run("metrics-probe", "success", 1.5, input_tokens=100, output_tokens=20)

        assert sample("investigator_agent_tokens_total", agent="metrics-probe", direction="input") == before + 100
        assert sample("investigator_agent_invocations_total", agent="metrics-probe", status="success") >= 1

    def test_tool_call_without_duration(self):
        before = sample("investigator_tool_calls_total", provider="probe", operation="call_tool", status="rejected")

        metrics.record_tool_call("probe", "call_tool", "rejected")

        assert sample(
            "investigator_tool_calls_total", provider="probe", operation="call_tool", status="rejected"
        ) == before + 1


class TestTracingHelpers:

    def test_setup_disabled_installs_nothing(self):
        assert setup_tracing(ObservabilitySettings(tracing_enabled=False)) is False

    def test_spans_work_without_sdk(self):
        with start_agent_span("triage", "inv-001", domain=None) as span:
            span.set_attribute("agent.iterations", 2)

    def test_record_span_error(self):
        span = Mock()
        error = RuntimeError("phase exploded")

        record_span_error(span, error)

        span.record_exception.assert_called_once_with(error)
        status = span.set_status.call_args.args[0]
        assert status.status_code == StatusCode.ERROR
        assert status.description == "phase exploded"

    def test_trace_carrier_round_trip_without_span(self):
        assert inject_trace_context() == {}
        assert extract_trace_context({}) is None
        assert extract_trace_context(None) is None
        assert extract_trace_context({"traceparent": "00-" + "a" * 32 + "-" + "b" * 16 + "-01"}) is not None
