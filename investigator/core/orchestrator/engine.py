"""Orchestrator Engine

Drives one investigation through the fixed phase pipeline:

    intake -> triage -> context -> gather -> hypothesize -> analyze
           -> recommend -> report -> deliver

Standard phases dispatch one agent named after the phase. ``gather`` fans
out to the configured gather agents and waits for all of them; a failing
agent contributes an inline error marker instead of failing the phase.
``hypothesize`` runs the hypothesis/verification loop. ``deliver`` persists
the report and notifies the caller's callback, if any.

Each phase's output is appended to a running context that the next phase
receives. Any phase raising marks the investigation failed and stops the
pipeline; already-persisted results stay.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from investigator.config.settings import DEFAULT_GATHER_AGENTS
from investigator.core.orchestrator.delivery import CallbackNotifier
from investigator.core.orchestrator.dispatcher import Dispatcher
from investigator.core.orchestrator.hypothesis_loop import HypothesisLoop
from investigator.exceptions import CallbackDeliveryFailure, PersistenceFailure, PhaseFailure
from investigator.infrastructure.logging.coordinator import RequestContext, set_phase
from investigator.infrastructure.logging.unified import get_unified_logger
from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import (
    extract_trace_context,
    record_span_error,
    start_investigation_span,
    start_phase_span,
)
from investigator.models.interfaces import IInvestigationStore
from investigator.models.investigation import (
    PHASES,
    HypothesisLoopResult,
    InvestigationJob,
    InvestigationReport,
    InvestigationStatus,
    Phase,
    PhaseResult,
    running_status,
    utc_now,
)

PHASE_SEPARATOR = "\n\n"
GATHER_SEPARATOR = "\n\n---\n\n"


def initial_context(job: InvestigationJob) -> str:
    return (
        f"Ticket: {job.ticket_id}\n"
        f"Domain: {job.domain or 'auto-detect'}\n"
        f"Mode: {job.mode}\n"
        f"Requested by: {job.requested_by}"
    )


def extract_recommendations(text: str) -> List[str]:
    """Bullet lines (``- ``/``* ``) of the recommend phase output."""
    items = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(("- ", "* ")):
            item = stripped[2:].strip()
            if item:
                items.append(item)
    return items


@dataclass
class _PipelineState:
    """Per-execution state carried from phase to phase."""
    context: str
    outputs: Dict[Phase, str] = field(default_factory=dict)
    hypothesis_result: Optional[HypothesisLoopResult] = None
    report: Optional[InvestigationReport] = None

    def append(self, label: str, output: str) -> None:
        self.context += f"{PHASE_SEPARATOR}[{label}]\n{output}"


class OrchestratorEngine:
    """Runs investigations phase by phase."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        hypothesis_loop: HypothesisLoop,
        store: IInvestigationStore,
        notifier: Optional[CallbackNotifier] = None,
        gather_agents: Optional[List[str]] = None,
        report_summary_chars: int = 1000,
        report_url_template: str = "/api/v1/investigations/{investigation_id}/report",
    ):
        self.dispatcher = dispatcher
        self.hypothesis_loop = hypothesis_loop
        self.store = store
        self.notifier = notifier
        self.gather_agents = list(gather_agents or DEFAULT_GATHER_AGENTS)
        self.report_summary_chars = report_summary_chars
        self.report_url_template = report_url_template
        self.logger = get_unified_logger(__name__, "core")

    async def execute(self, job: InvestigationJob) -> InvestigationReport:
        """
        Run every phase for ``job``'s investigation.

        Returns:
            The persisted report

        Raises:
            PhaseFailure: A phase raised; the investigation is marked failed
        """
        investigation_id = job.investigation_id
        start = time.monotonic()
        state = _PipelineState(context=initial_context(job))
        current: Phase = PHASES[0]

        with RequestContext(investigation_id=investigation_id, ticket_id=job.ticket_id), \
                start_investigation_span(
                    investigation_id, job.ticket_id, job.domain,
                    parent=extract_trace_context(job.trace_carrier),
                ) as span:
            self.logger.log_event(
                "business", "investigation_started",
                data={"mode": job.mode, "requested_by": job.requested_by},
                investigation_id=investigation_id,
            )

            try:
                for current in PHASES:
                    set_phase(current.value)
                    await self._run_phase(current, job, state)
                await self.store.mark_completed(investigation_id, utc_now())
            except Exception as e:
                duration = time.monotonic() - start
                record_span_error(span, e)
                span.set_attribute("investigation.status", InvestigationStatus.FAILED.value)
                metrics.record_investigation(InvestigationStatus.FAILED.value, duration)
                self.logger.error(
                    "Investigation failed",
                    error=e,
                    investigation_id=investigation_id,
                    phase=current.value,
                    duration_seconds=duration,
                )
                await self._mark_failed(investigation_id, str(e))
                raise PhaseFailure(current.value, str(e), details={"investigation_id": investigation_id}) from e

            duration = time.monotonic() - start
            span.set_attribute("investigation.status", InvestigationStatus.COMPLETED.value)
            span.set_attribute("investigation.duration_seconds", duration)
            metrics.record_investigation(InvestigationStatus.COMPLETED.value, duration)
            metrics.INVESTIGATION_VERDICT.labels(verdict=state.report.verdict).inc()
            self.logger.log_event(
                "business", "investigation_completed",
                data={"duration_seconds": duration},
                investigation_id=investigation_id,
            )
            return state.report

    async def _run_phase(self, phase: Phase, job: InvestigationJob, state: _PipelineState) -> None:
        investigation_id = job.investigation_id
        start = time.monotonic()
        await self._set_status(investigation_id, phase)

        async with self.logger.operation("run_phase", phase=phase.value, investigation_id=investigation_id) as op:
            with start_phase_span(investigation_id, phase.value):
                if phase is Phase.GATHER:
                    output = await self._gather(job, state.context)
                    state.append(phase.value, output)
                elif phase is Phase.HYPOTHESIZE:
                    result = await self.hypothesis_loop.run(investigation_id, state.context, domain=job.domain)
                    state.hypothesis_result = result
                    output = (
                        f"Accepted hypothesis: {result.accepted_hypothesis.hypothesis}\n"
                        f"Confidence: {result.accepted_hypothesis.confidence}\n"
                        f"Iterations: {result.iterations}\n"
                        f"Converged: {str(result.converged).lower()}"
                    )
                    state.append(phase.value, output)
                elif phase is Phase.DELIVER:
                    state.report = await self._deliver(job, state)
                    output = state.report.summary
                else:
                    agent_output = await self.dispatcher.dispatch(
                        investigation_id, phase.value, state.context, domain=job.domain
                    )
                    output = agent_output.content
                    state.append(phase.value, output)
            op["output_chars"] = len(output)

        state.outputs[phase] = output
        duration_ms = int((time.monotonic() - start) * 1000)
        metrics.PHASE_DURATION.labels(phase=phase.value).observe(duration_ms / 1000)
        self.logger.log_metric("phase_duration", duration_ms, unit="ms", tags={"phase": phase.value})

        try:
            await self.store.append_phase_result(
                investigation_id, PhaseResult(phase=phase, output=output, duration_ms=duration_ms)
            )
        except PersistenceFailure as e:
            self.logger.error("Failed to persist phase result", error=e, phase=phase.value)

    async def _gather(self, job: InvestigationJob, context: str) -> str:
        results = await asyncio.gather(
            *(
                self.dispatcher.dispatch(job.investigation_id, agent, context, domain=job.domain)
                for agent in self.gather_agents
            ),
            return_exceptions=True,
        )

        sections = []
        for agent, result in zip(self.gather_agents, results):
            if isinstance(result, BaseException):
                self.logger.error("Gather agent failed", error=result, agent=agent)
                sections.append(f"[{agent}] ERROR: {result}")
            else:
                sections.append(f"[{agent}]\n{result.content}")
        return GATHER_SEPARATOR.join(sections)

    async def _deliver(self, job: InvestigationJob, state: _PipelineState) -> InvestigationReport:
        evidence = {"full_report": state.context}
        confidence = 0.0
        if state.hypothesis_result is not None:
            accepted = state.hypothesis_result.accepted_hypothesis
            confidence = accepted.confidence
            evidence["accepted_hypothesis"] = accepted.model_dump()
            evidence["hypothesis_iterations"] = state.hypothesis_result.iterations
            evidence["converged"] = state.hypothesis_result.converged

        report = InvestigationReport(
            investigation_id=job.investigation_id,
            confidence=confidence,
            summary=state.context[: self.report_summary_chars],
            evidence=evidence,
            recommendations=extract_recommendations(state.outputs.get(Phase.RECOMMEND, "")),
        )
        await self.store.save_report(report)

        if job.callback_url:
            await self._notify(job, report)
        return report

    async def _notify(self, job: InvestigationJob, report: InvestigationReport) -> None:
        if self.notifier is None:
            self.logger.warning("Callback URL supplied but no notifier configured", callback_url=job.callback_url)
            return

        payload = {
            "investigation_id": job.investigation_id,
            "ticket_id": job.ticket_id,
            "status": InvestigationStatus.COMPLETED.value,
            "verdict": report.verdict,
            "confidence": report.confidence,
            "report_url": self.report_url_template.format(investigation_id=job.investigation_id),
        }
        try:
            await self.notifier.notify(job.callback_url, payload)
        except CallbackDeliveryFailure as e:
            self.logger.warning(
                "Callback delivery failed",
                callback_url=job.callback_url,
                error_message=str(e),
            )

    async def _set_status(self, investigation_id: str, phase: Phase) -> None:
        try:
            await self.store.update_status(investigation_id, running_status(phase), phase)
        except PersistenceFailure as e:
            self.logger.error("Failed to persist investigation status", error=e, phase=phase.value)

    async def _mark_failed(self, investigation_id: str, error: str) -> None:
        try:
            await self.store.mark_failed(investigation_id, error)
        except PersistenceFailure as e:
            self.logger.error("Failed to mark investigation failed", error=e, investigation_id=investigation_id)
