"""Agent Dispatcher

Wraps one AgentRunner invocation with the orchestration-level concerns:
tracing span, duration measurement, metrics, logging, and persistence of the
agent's output and run record. Persistence is best-effort; runner failures
mark the span errored and propagate to the caller, which decides fatality.
"""

import time
from typing import Optional

from investigator.core.agent.runner import AgentRunner
from investigator.exceptions import PersistenceFailure
from investigator.infrastructure.logging.unified import get_unified_logger
from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import record_span_error, start_agent_span
from investigator.models.interfaces import IInvestigationStore
from investigator.models.investigation import AgentOutput, AgentRunRecord


class Dispatcher:
    """Dispatches named agents for an investigation."""

    def __init__(self, runner: AgentRunner, store: IInvestigationStore):
        self.runner = runner
        self.store = store
        self.logger = get_unified_logger(__name__, "core")

    async def dispatch(
        self,
        investigation_id: str,
        agent_name: str,
        investigation_context: str = "",
        domain: Optional[str] = None,
    ) -> AgentOutput:
        """Run ``agent_name`` and return its output.

        Raises:
            Whatever the runner raised (typically ModelCallFailed)
        """

        async def persist_output(output: AgentOutput) -> None:
            try:
                await self.store.append_agent_output(investigation_id, output)
            except PersistenceFailure as e:
                self.logger.error(
                    "Failed to persist agent output",
                    error=e,
                    investigation_id=investigation_id,
                    agent=agent_name,
                )

        async def persist_record(record: AgentRunRecord) -> None:
            try:
                await self.store.append_agent_run(investigation_id, record)
            except PersistenceFailure as e:
                self.logger.error(
                    "Failed to persist agent run record",
                    error=e,
                    investigation_id=investigation_id,
                    agent=agent_name,
                )

        self.logger.info("Dispatching agent", investigation_id=investigation_id, agent=agent_name)
        start = time.monotonic()

        with start_agent_span(agent_name, investigation_id, domain) as span:
            try:
                output = await self.runner.run(
                    agent_name,
                    investigation_context,
                    on_output=persist_output,
                    on_record=persist_record,
                )
            except Exception as e:
                duration = time.monotonic() - start
                record_span_error(span, e)
                metrics.record_agent_run(agent_name, "error", duration)
                self.logger.error(
                    "Agent failed",
                    error=e,
                    investigation_id=investigation_id,
                    agent=agent_name,
                    duration_ms=int(duration * 1000),
                )
                raise

            duration = time.monotonic() - start
            span.set_attribute("agent.iterations", output.iterations)
            span.set_attribute("agent.stop_reason", output.stop_reason.value)
            span.set_attribute("agent.total_tokens", output.token_usage.total_tokens)

        metrics.record_agent_run(
            agent_name,
            "success",
            duration,
            input_tokens=output.token_usage.input_tokens,
            output_tokens=output.token_usage.output_tokens,
        )
        self.logger.info(
            "Agent completed",
            investigation_id=investigation_id,
            agent=agent_name,
            duration_ms=int(duration * 1000),
            iterations=output.iterations,
            stop_reason=output.stop_reason.value,
            tokens=output.token_usage.total_tokens,
        )
        return output
