# File: investigator/models/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from investigator.models.investigation import (
    AgentOutput,
    AgentRunRecord,
    Hypothesis,
    Investigation,
    InvestigationJob,
    InvestigationReport,
    Phase,
    PhaseResult,
)
from investigator.models.tools import CompletionResponse, ToolCallResult, ToolInfo


class IToolProvider(ABC):
    """A named external system exposing callable tools.

    Implementations apply their own resilience policy (circuit breaker,
    retry, timeout) to every call.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Configured provider name."""
        pass

    @abstractmethod
    async def list_tools(self) -> List[ToolInfo]:
        """List the tools this provider exposes.

        Raises:
            ProviderUnavailable: When the provider's circuit is open
            ToolCallFailed: When every attempt failed
        """
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        """Invoke one tool by name.

        Args:
            name: Tool name as advertised by ``list_tools``
            arguments: Model-supplied tool input

        Returns:
            ToolCallResult with the provider's structured content

        Raises:
            ProviderUnavailable: When the provider's circuit is open
            ToolCallFailed: When every attempt failed
        """
        pass


class IToolRegistry(ABC):
    """Capability set the agent layer needs from a tool registry.

    Variants are swappable: the network/subprocess-backed provider registry
    in production, an in-memory double in tests.
    """

    @abstractmethod
    def resolve_provider(self, tool_name: str) -> Optional[IToolProvider]:
        """Return the provider owning ``tool_name``, or None when unknown."""
        pass

    @abstractmethod
    def list_providers(self) -> List[str]:
        """Names of all configured providers."""
        pass

    @abstractmethod
    async def list_all_tools(self) -> List[ToolInfo]:
        """Full tool catalog across every reachable provider.

        Providers that cannot be reached are skipped; their tools simply do
        not appear and will not resolve.
        """
        pass


class ICompletionClient(ABC):
    """Language-model completion service: prompt in, content blocks out."""

    @abstractmethod
    async def create_message(
        self,
        model: str,
        system_prompt: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
        max_tokens: int,
    ) -> CompletionResponse:
        """Request one completion.

        Args:
            model: Concrete model identifier
            system_prompt: Agent system prompt
            tools: Tool catalog as ``{name, description, input_schema}`` dicts
            messages: Running conversation history
            max_tokens: Output token cap for this response

        Returns:
            CompletionResponse with text / tool_use blocks and token usage

        Raises:
            ModelCallFailed: On any transport or service error
        """
        pass


class IInvestigationStore(ABC):
    """Read/write contract the engine needs from the investigation store.

    All append operations are append-only. Write failures raise
    ``PersistenceFailure``; the engine decides whether they are fatal.
    """

    @abstractmethod
    async def create_investigation(self, investigation: Investigation) -> None:
        """Insert a new investigation (used by intake and tests)."""
        pass

    @abstractmethod
    async def get_investigation(self, investigation_id: str) -> Optional[Investigation]:
        pass

    @abstractmethod
    async def update_status(self, investigation_id: str, status: str, phase: Optional[Phase] = None) -> None:
        """Set the free-form status and, when given, the current phase."""
        pass

    @abstractmethod
    async def mark_completed(self, investigation_id: str, completed_at: datetime) -> None:
        pass

    @abstractmethod
    async def mark_failed(self, investigation_id: str, error: str) -> None:
        pass

    @abstractmethod
    async def append_phase_result(self, investigation_id: str, result: PhaseResult) -> None:
        pass

    @abstractmethod
    async def append_agent_output(self, investigation_id: str, output: AgentOutput) -> None:
        pass

    @abstractmethod
    async def append_agent_run(self, investigation_id: str, record: AgentRunRecord) -> None:
        pass

    @abstractmethod
    async def append_hypothesis(self, investigation_id: str, hypothesis: Hypothesis) -> None:
        pass

    @abstractmethod
    async def save_report(self, report: InvestigationReport) -> None:
        pass

    @abstractmethod
    async def get_phase_results(self, investigation_id: str) -> List[PhaseResult]:
        pass

    @abstractmethod
    async def get_hypotheses(self, investigation_id: str) -> List[Hypothesis]:
        pass

    @abstractmethod
    async def get_report(self, investigation_id: str) -> Optional[InvestigationReport]:
        pass


class IJobQueue(ABC):
    """Durable at-least-once job queue deduplicated by investigation id."""

    @abstractmethod
    async def enqueue(self, job: InvestigationJob) -> bool:
        """Add a job unless one with the same investigation id is in flight.

        Returns:
            True when queued, False when the enqueue was a duplicate no-op
        """
        pass

    @abstractmethod
    async def dequeue(self, timeout: float) -> Optional[InvestigationJob]:
        """Wait up to ``timeout`` seconds for the next job."""
        pass

    @abstractmethod
    async def ack(self, job: InvestigationJob) -> None:
        """Mark a job done and release its dedup identity."""
        pass

    @abstractmethod
    async def nack(self, job: InvestigationJob) -> None:
        """Return a job to the queue for redelivery."""
        pass

    @abstractmethod
    async def recover_inflight(self) -> int:
        """Requeue jobs left unacknowledged by a crashed consumer.

        Returns:
            Number of jobs made available for redelivery
        """
        pass

    @abstractmethod
    async def depth(self) -> int:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
