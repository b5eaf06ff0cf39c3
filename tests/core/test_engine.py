"""Tests for the OrchestratorEngine phase pipeline."""

import json
from unittest.mock import Mock

import httpx
import pytest

from investigator.core.orchestrator.delivery import CallbackNotifier
from investigator.core.orchestrator.engine import (
    GATHER_SEPARATOR,
    OrchestratorEngine,
    extract_recommendations,
    initial_context,
)
from investigator.core.orchestrator.hypothesis_loop import HypothesisLoop
from investigator.exceptions import CallbackDeliveryFailure, ModelCallFailed, PersistenceFailure, PhaseFailure
from investigator.infrastructure.persistence.inmemory_investigation_store import InMemoryInvestigationStore
from investigator.models.investigation import Investigation, InvestigationJob, PHASES, Phase
from tests.test_doubles import StubDispatcher

GATHER_AGENTS = ["gather-logs", "gather-changes", "gather-slack", "gather-metrics"]

CONVERGING_ANSWERS = {
    "hypothesize": '{"hypothesis": "Connection pool exhausted", "confidence": 0.7}',
    "verification": '{"confidence": 0.9, "evidence_summary": "pool saturation in metrics"}',
    "recommend": "Actions:\n- Raise the pool size to 50\n* Add pool saturation alert\nplain line",
}


class CallbackRecorder:
    """httpx.MockTransport handler capturing callback requests."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


def build_engine(dispatcher, store, notifier=None, **kwargs) -> OrchestratorEngine:
    loop = HypothesisLoop(dispatcher, store, confidence_threshold=0.8, max_iterations=3)
    return OrchestratorEngine(dispatcher, loop, store, notifier=notifier, gather_agents=GATHER_AGENTS, **kwargs)


class TestHelpers:

    def test_initial_context(self, sample_job):
        assert initial_context(sample_job) == (
            "Ticket: OPS-1234\nDomain: payments\nMode: standard\nRequested by: oncall"
        )

    def test_initial_context_without_domain(self):
        job = InvestigationJob(investigation_id="i", ticket_id="T")
        assert "Domain: auto-detect" in initial_context(job)

    def test_extract_recommendations(self):
        assert extract_recommendations(CONVERGING_ANSWERS["recommend"]) == [
            "Raise the pool size to 50",
            "Add pool saturation alert",
        ]
        assert extract_recommendations("") == []


class TestPipelineExecution:

    @pytest.mark.asyncio
    async def test_phases_run_in_fixed_order(self, seeded_store, sample_job):
        dispatcher = StubDispatcher(dict(CONVERGING_ANSWERS))

        await build_engine(dispatcher, seeded_store).execute(sample_job)

        assert dispatcher.agents_called() == [
            "intake", "triage", "context",
            *GATHER_AGENTS,
            "hypothesize", "verification",
            "analyze", "recommend", "report",
        ]
        phase_results = await seeded_store.get_phase_results("inv-001")
        assert [r.phase for r in phase_results] == PHASES

    @pytest.mark.asyncio
    async def test_each_phase_is_logged_as_an_operation(self, seeded_store, sample_job):
        engine = build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store)
        engine.logger.logger = Mock()

        await engine.execute(sample_job)

        ends = [
            c.kwargs for c in engine.logger.logger.info.call_args_list
            if c.kwargs.get("event_type") == "operation_end"
        ]
        assert [e["phase"] for e in ends] == [p.value for p in PHASES]
        assert all(e["operation"] == "run_phase" and "duration_seconds" in e for e in ends)

    @pytest.mark.asyncio
    async def test_status_transitions(self, seeded_store, sample_job):
        await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store).execute(sample_job)

        assert seeded_store.status_history["inv-001"] == [f"running:{p.value}" for p in PHASES] + ["completed"]
        investigation = await seeded_store.get_investigation("inv-001")
        assert investigation.status == "completed"
        assert investigation.completed_at is not None
        assert investigation.current_phase == Phase.DELIVER

    @pytest.mark.asyncio
    async def test_context_accumulates_between_phases(self, seeded_store, sample_job):
        dispatcher = StubDispatcher(dict(CONVERGING_ANSWERS))

        await build_engine(dispatcher, seeded_store).execute(sample_job)

        contexts = {call["agent"]: call["context"] for call in dispatcher.calls}
        assert contexts["intake"] == initial_context(sample_job)
        assert contexts["triage"] == initial_context(sample_job) + "\n\n[intake]\nintake output"
        assert "[triage]\ntriage output" in contexts["context"]
        assert "[gather]\n[gather-logs]\ngather-logs output" in contexts["analyze"]
        assert "[hypothesize]\nAccepted hypothesis: Connection pool exhausted" in contexts["analyze"]
        assert all(call["domain"] == "payments" for call in dispatcher.calls)

    @pytest.mark.asyncio
    async def test_gather_agents_share_the_same_context(self, seeded_store, sample_job):
        dispatcher = StubDispatcher(dict(CONVERGING_ANSWERS))

        await build_engine(dispatcher, seeded_store).execute(sample_job)

        gather_contexts = {c["context"] for c in dispatcher.calls if c["agent"] in GATHER_AGENTS}
        assert len(gather_contexts) == 1

    @pytest.mark.asyncio
    async def test_gather_partial_failure_is_inlined(self, seeded_store, sample_job):
        answers = dict(CONVERGING_ANSWERS)
        answers["gather-slack"] = ModelCallFailed("slack agent timed out")
        dispatcher = StubDispatcher(answers)

        await build_engine(dispatcher, seeded_store).execute(sample_job)

        gather = next(r for r in await seeded_store.get_phase_results("inv-001") if r.phase == Phase.GATHER)
        sections = gather.output.split(GATHER_SEPARATOR)
        assert [s.split("]")[0] + "]" for s in sections] == [f"[{a}]" for a in GATHER_AGENTS]
        assert gather.output.count("ERROR:") == 1
        assert "[gather-slack] ERROR: slack agent timed out" in sections
        assert (await seeded_store.get_investigation("inv-001")).status == "completed"

    @pytest.mark.asyncio
    async def test_hypothesize_phase_output(self, seeded_store, sample_job):
        await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store).execute(sample_job)

        hypothesize = next(
            r for r in await seeded_store.get_phase_results("inv-001") if r.phase == Phase.HYPOTHESIZE
        )
        assert hypothesize.output == (
            "Accepted hypothesis: Connection pool exhausted\nConfidence: 0.9\nIterations: 1\nConverged: true"
        )


class TestReport:

    @pytest.mark.asyncio
    async def test_report_content(self, seeded_store, sample_job):
        report = await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store).execute(sample_job)

        assert await seeded_store.get_report("inv-001") == report
        assert report.verdict == "see_report"
        assert report.confidence == 0.9
        assert report.recommendations == ["Raise the pool size to 50", "Add pool saturation alert"]
        assert report.evidence["converged"] is True
        assert report.evidence["hypothesis_iterations"] == 1
        assert report.evidence["accepted_hypothesis"]["hypothesis"] == "Connection pool exhausted"
        assert report.evidence["full_report"].endswith("[report]\nreport output")
        assert report.summary == report.evidence["full_report"][:1000]

    @pytest.mark.asyncio
    async def test_summary_truncation(self, seeded_store, sample_job):
        engine = build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store, report_summary_chars=40)

        report = await engine.execute(sample_job)

        assert len(report.summary) == 40
        deliver = next(r for r in await seeded_store.get_phase_results("inv-001") if r.phase == Phase.DELIVER)
        assert deliver.output == report.summary


class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_phase_failure_marks_investigation_failed(self, seeded_store, sample_job):
        dispatcher = StubDispatcher({"analyze": ModelCallFailed("Anthropic API error 529: overloaded")})

        with pytest.raises(PhaseFailure) as exc_info:
            await build_engine(dispatcher, seeded_store).execute(sample_job)

        assert exc_info.value.phase == "analyze"
        assert str(exc_info.value) == "Anthropic API error 529: overloaded"
        assert isinstance(exc_info.value.__cause__, ModelCallFailed)

        investigation = await seeded_store.get_investigation("inv-001")
        assert investigation.status == "failed"
        assert investigation.error == "Anthropic API error 529: overloaded"
        assert investigation.current_phase == Phase.ANALYZE

    @pytest.mark.asyncio
    async def test_later_phases_do_not_run_after_failure(self, seeded_store, sample_job):
        dispatcher = StubDispatcher({"triage": RuntimeError("boom")})

        with pytest.raises(PhaseFailure):
            await build_engine(dispatcher, seeded_store).execute(sample_job)

        assert dispatcher.agents_called() == ["intake", "triage"]
        results = await seeded_store.get_phase_results("inv-001")
        assert [r.phase for r in results] == [Phase.INTAKE]
        assert await seeded_store.get_report("inv-001") is None

    @pytest.mark.asyncio
    async def test_report_save_failure_is_fatal(self, sample_job):
        class NoReportStore(InMemoryInvestigationStore):
            async def save_report(self, report):
                raise PersistenceFailure("report write refused")

        store = NoReportStore()
        await store.create_investigation(Investigation(id="inv-001", ticket_id="OPS-1234"))

        with pytest.raises(PhaseFailure) as exc_info:
            await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), store).execute(sample_job)

        assert exc_info.value.phase == "deliver"
        assert (await store.get_investigation("inv-001")).status == "failed"

    @pytest.mark.asyncio
    async def test_status_write_failures_are_tolerated(self, sample_job):
        class FlakyStatusStore(InMemoryInvestigationStore):
            async def update_status(self, investigation_id, status, phase=None):
                raise PersistenceFailure("status write refused")

        store = FlakyStatusStore()
        await store.create_investigation(Investigation(id="inv-001", ticket_id="OPS-1234"))

        await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), store).execute(sample_job)

        assert (await store.get_investigation("inv-001")).status == "completed"


class TestCallbackDelivery:

    @pytest.fixture
    def callback_job(self, sample_job):
        return sample_job.model_copy(update={"callback_url": "https://tickets.example.com/hooks/investigation"})

    @pytest.mark.asyncio
    async def test_callback_payload(self, seeded_store, callback_job):
        recorder = CallbackRecorder()
        notifier = CallbackNotifier(transport=httpx.MockTransport(recorder))

        await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store, notifier).execute(callback_job)

        assert len(recorder.requests) == 1
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tickets.example.com/hooks/investigation"
        assert json.loads(request.content) == {
            "investigation_id": "inv-001",
            "ticket_id": "OPS-1234",
            "status": "completed",
            "verdict": "see_report",
            "confidence": 0.9,
            "report_url": "/api/v1/investigations/inv-001/report",
        }

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_fail_investigation(self, seeded_store, callback_job):
        recorder = CallbackRecorder(status_code=503)
        notifier = CallbackNotifier(transport=httpx.MockTransport(recorder))

        report = await build_engine(
            StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store, notifier
        ).execute(callback_job)

        assert len(recorder.requests) == 1
        assert report is not None
        assert (await seeded_store.get_investigation("inv-001")).status == "completed"

    @pytest.mark.asyncio
    async def test_no_callback_url_means_no_request(self, seeded_store, sample_job):
        recorder = CallbackRecorder()
        notifier = CallbackNotifier(transport=httpx.MockTransport(recorder))

        await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store, notifier).execute(sample_job)

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_malformed_callback_url_does_not_fail_investigation(self, seeded_store, sample_job):
        recorder = CallbackRecorder()
        notifier = CallbackNotifier(transport=httpx.MockTransport(recorder))
        job = sample_job.model_copy(update={"callback_url": "http://\x00host/"})

        report = await build_engine(StubDispatcher(dict(CONVERGING_ANSWERS)), seeded_store, notifier).execute(job)

        assert recorder.requests == []
        assert report.confidence == 0.9
        assert (await seeded_store.get_investigation("inv-001")).status == "completed"


class TestCallbackNotifier:

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        notifier = CallbackNotifier(transport=httpx.MockTransport(CallbackRecorder(status_code=500)))

        with pytest.raises(CallbackDeliveryFailure, match="returned HTTP 500") as exc_info:
            await notifier.notify("https://hooks.example.com/x", {"investigation_id": "i"})

        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = CallbackNotifier(transport=httpx.MockTransport(refuse))

        with pytest.raises(CallbackDeliveryFailure, match="failed: connection refused"):
            await notifier.notify("https://hooks.example.com/x", {})

    @pytest.mark.asyncio
    async def test_invalid_url_raises(self):
        notifier = CallbackNotifier(transport=httpx.MockTransport(CallbackRecorder()))

        with pytest.raises(CallbackDeliveryFailure, match="Invalid callback URL") as exc_info:
            await notifier.notify("http://\x00host/", {})

        assert exc_info.value.details == {"callback_url": "http://\x00host/"}
