"""Investigation data models.

Pydantic models for everything the orchestration engine reads, writes or
passes between components:

- Investigation: the tracked unit of work (status / phase / error)
- PhaseResult: one row per executed phase
- AgentOutput / AgentRunRecord: what one dispatcher call produced
- Hypothesis / HypothesisLoopResult: generate-then-verify iterations
- InvestigationReport: the record persisted by the deliver phase
- InvestigationJob: the durable-queue payload
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    """Pipeline phases, in execution order."""

    INTAKE = "intake"
    TRIAGE = "triage"
    CONTEXT = "context"
    GATHER = "gather"
    HYPOTHESIZE = "hypothesize"
    ANALYZE = "analyze"
    RECOMMEND = "recommend"
    REPORT = "report"
    DELIVER = "deliver"


# Fixed and total; the engine never reorders or skips these.
PHASES: List[Phase] = list(Phase)


class InvestigationStatus(str, Enum):
    """Terminal statuses. Running statuses are the string ``running:<phase>``."""

    QUEUED = "queued"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InvestigationStatus.COMPLETED, InvestigationStatus.FAILED)


def running_status(phase: Phase) -> str:
    """Status string for an investigation currently executing ``phase``."""
    return f"running:{phase.value}"


class StopReason(str, Enum):
    """Why an agent's tool-use loop stopped."""

    END_TURN = "end_turn"
    MAX_ITERATIONS = "max_iterations"


class Investigation(BaseModel):
    """One unit of incident-investigation work.

    Created by the intake collaborator; mutated only by the orchestrator
    engine; terminal once ``completed`` or ``failed``.
    """

    id: str = Field(..., description="Investigation identifier")
    ticket_id: str = Field(..., description="Ticket / alert reference")
    domain: Optional[str] = Field(None, description="Owning domain, if known")
    mode: str = Field("standard", description="Investigation mode")
    status: str = Field(InvestigationStatus.QUEUED.value, description="running:<phase> | completed | failed")
    current_phase: Optional[Phase] = Field(None, description="Phase currently or last executed")
    error: Optional[str] = Field(None, description="Captured error text on failure")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in (InvestigationStatus.COMPLETED.value, InvestigationStatus.FAILED.value)


class PhaseResult(BaseModel):
    """Output of one phase execution. Append-only."""

    phase: Phase
    output: str
    duration_ms: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class TokenUsage(BaseModel):
    """Token accounting accumulated across an agent run."""

    input_tokens: int = 0
    output_tokens: int = 0

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens


class AgentOutput(BaseModel):
    """Final output of one agent run."""

    agent_name: str
    content: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    iterations: int = 0
    stop_reason: StopReason = StopReason.END_TURN


class AgentRunRecord(BaseModel):
    """Timing and accounting record for one agent run."""

    agent_name: str
    model: str
    iterations: int
    token_usage: TokenUsage
    stop_reason: StopReason
    started_at: datetime
    completed_at: datetime
    duration_ms: int


class Hypothesis(BaseModel):
    """A candidate root cause with a confidence score. Immutable once built."""

    iteration: int = Field(..., ge=1)
    hypothesis: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    evidence_summary: str = ""
    verified: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        """Clamp model-reported confidence into [0, 1]; NaN counts as no confidence."""
        confidence = float(value)
        if math.isnan(confidence):
            return 0.0
        return max(0.0, min(1.0, confidence))


class HypothesisLoopResult(BaseModel):
    """Outcome of the hypothesis / verification loop."""

    accepted_hypothesis: Hypothesis
    all_hypotheses: List[Hypothesis]
    iterations: int
    converged: bool


class InvestigationReport(BaseModel):
    """Final report record written by the deliver phase."""

    investigation_id: str
    verdict: str = "see_report"
    confidence: float = 0.0
    summary: str
    evidence: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class InvestigationJob(BaseModel):
    """Durable-queue payload. ``investigation_id`` is the dedup identity."""

    investigation_id: str
    ticket_id: str
    domain: Optional[str] = None
    mode: str = "standard"
    callback_url: Optional[str] = None
    requested_by: str = "system"
    trace_carrier: Dict[str, str] = Field(default_factory=dict)

    @property
    def job_id(self) -> str:
        return self.investigation_id
