"""
Investigator Logging Coordinator

Investigation-scoped logging context held in a ContextVar so that every log
line emitted while a worker processes an investigation carries its identity
and current phase, without threading those values through every call.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set


@dataclass
class RequestContext:
    """
    Single source of truth for investigation-scoped logging data.

    Attributes:
        correlation_id: Unique identifier for tracing one processing attempt
        investigation_id: Investigation being processed
        ticket_id: Ticket / alert reference of the investigation
        agent_phase: Phase currently executing (e.g. "gather")
        start_time: When processing of this attempt started
        attributes: Additional scoped metadata
        logged_operations: Operation keys already logged, for deduplication
    """
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    investigation_id: Optional[str] = None
    ticket_id: Optional[str] = None
    agent_phase: Optional[str] = None
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attributes: Dict[str, Any] = field(default_factory=dict)
    logged_operations: Set[str] = field(default_factory=set)
    _token: Optional[Token] = field(default=None, repr=False, compare=False)

    def has_logged(self, operation_key: str) -> bool:
        return operation_key in self.logged_operations

    def mark_logged(self, operation_key: str) -> None:
        self.logged_operations.add(operation_key)

    def __enter__(self):
        """Set this context as active for the current task."""
        self._token = request_context.set(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore whatever context was active before."""
        if self._token is not None:
            request_context.reset(self._token)
            self._token = None
        return False


request_context: ContextVar[Optional[RequestContext]] = ContextVar("request_context", default=None)


def set_phase(phase: Optional[str]) -> None:
    """Record the phase now executing on the active context, if any."""
    ctx = request_context.get()
    if ctx is not None:
        ctx.agent_phase = phase
