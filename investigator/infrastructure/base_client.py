"""
Investigator Base Infrastructure Client

Base class for external tool-provider clients: unified logging, bounded
retry with exponential backoff, a hard per-attempt timeout, and a circuit
breaker shared by every concurrent caller of one client instance.
"""

import asyncio
import time
from abc import ABC
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from investigator.exceptions import ProviderUnavailable, ToolCallFailed
from investigator.infrastructure.logging.unified import get_unified_logger
from investigator.infrastructure.observability import metrics


T = TypeVar('T')


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """
    Per-provider circuit breaker.

    ``closed``: calls allowed; consecutive failures are counted and reaching
    ``threshold`` opens the circuit, recording the open time.
    ``open``: calls rejected until ``reset_ms`` has elapsed, after which the
    state is reported as ``half-open`` on the next query.
    ``half-open``: calls allowed; a success closes the circuit and resets the
    counter, a failure reopens it with a new open time.

    State is only mutated synchronously between awaits, so a single event loop
    needs no lock.
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_ms: int = 60000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            threshold: Consecutive failures before the circuit opens
            reset_ms: Milliseconds an open circuit waits before half-open
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.threshold = threshold
        self.reset_ms = reset_ms
        self._clock = clock

        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self._state = CircuitState.CLOSED

    def get_state(self) -> CircuitState:
        """Current state, lazily promoting ``open`` to ``half-open``."""
        if self._state == CircuitState.OPEN and self.opened_at is not None:
            elapsed_ms = (self._clock() - self.opened_at) * 1000
            if elapsed_ms >= self.reset_ms:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def is_call_allowed(self) -> bool:
        return self.get_state() != CircuitState.OPEN

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened_at = None
        self._state = CircuitState.CLOSED

    def record_failure(self) -> bool:
        """Record a failed call.

        Returns:
            True if this failure transitioned the circuit to ``open``
        """
        state = self.get_state()
        self.failure_count += 1

        if state == CircuitState.HALF_OPEN or (
            state == CircuitState.CLOSED and self.failure_count >= self.threshold
        ):
            self._state = CircuitState.OPEN
            self.opened_at = self._clock()
            return True
        return False


class BaseExternalClient(ABC):
    """
    Base class for clients of external tool providers.

    Every external operation goes through :meth:`call_external`, which gates
    on the circuit breaker before each attempt, bounds each attempt with a
    timeout, and retries failures with exponential backoff.

    Attributes:
        client_name: Name of the client (the provider name)
        logger: UnifiedLogger instance for infrastructure layer
        circuit_breaker: Breaker shared by every call on this instance
        max_retries: Retries after the first attempt
        base_delay_ms: Backoff base; attempt N waits ``base * 2**N``
        timeout_ms: Hard per-attempt timeout
    """

    def __init__(
        self,
        client_name: str,
        max_retries: int = 3,
        base_delay_ms: int = 200,
        timeout_ms: int = 30000,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client_name = client_name
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.timeout_ms = timeout_ms
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._sleep = sleep
        self.logger = get_unified_logger(
            f"investigator.infrastructure.tools.{client_name}",
            "infrastructure"
        )

        self.last_error: Optional[str] = None
        self.connection_metrics: Dict[str, Any] = {
            "total_calls": 0,
            "successful_calls": 0,
            "failed_attempts": 0,
            "rejected_calls": 0,
            "last_success_time": None,
            "last_failure_time": None
        }

    async def call_external(
        self,
        operation_name: str,
        call_func: Callable[..., Awaitable[T]],
        *args,
        **kwargs
    ) -> T:
        """
        Execute one provider operation with breaker, timeout and retries.

        Runs at most ``max_retries + 1`` attempts. A timeout is treated the
        same as a raised error. The breaker is consulted before every attempt,
        so a circuit that opens mid-retry stops further attempts.

        Raises:
            ProviderUnavailable: The circuit rejected the call (never retried)
            ToolCallFailed: Every attempt failed; carries the last error's
                message and chains the last error as its cause
        """
        self.connection_metrics["total_calls"] += 1
        timeout = self.timeout_ms / 1000
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            if not self.circuit_breaker.is_call_allowed():
                self.connection_metrics["rejected_calls"] += 1
                metrics.record_tool_call(self.client_name, operation_name, "rejected")
                self.logger.log_event(
                    event_type="technical",
                    event_name="circuit_breaker_open",
                    severity="warning",
                    data={
                        "provider": self.client_name,
                        "operation": operation_name,
                        "attempt": attempt + 1,
                    }
                )
                raise ProviderUnavailable(
                    self.client_name,
                    details={"operation": operation_name, "last_error": self.last_error},
                )

            start_time = time.monotonic()
            try:
                result = await asyncio.wait_for(call_func(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = TimeoutError(
                    f'Tool provider "{self.client_name}" {operation_name} timed out after {self.timeout_ms}ms'
                )
            except Exception as call_error:
                last_error = call_error
            else:
                duration = time.monotonic() - start_time
                self.circuit_breaker.record_success()
                self.connection_metrics["successful_calls"] += 1
                self.connection_metrics["last_success_time"] = datetime.now(timezone.utc).isoformat()
                metrics.record_tool_call(self.client_name, operation_name, "success", duration)
                if attempt > 0:
                    self.logger.info(
                        f"Tool provider call succeeded after retry: {self.client_name}.{operation_name}",
                        attempts=attempt + 1,
                    )
                return result

            self._record_attempt_failure(operation_name, last_error, time.monotonic() - start_time)

            if attempt < self.max_retries:
                delay_ms = self.base_delay_ms * (2 ** attempt)
                self.logger.warning(
                    f"Tool provider call failed, will retry: {self.client_name}.{operation_name}",
                    error_message=str(last_error),
                    attempt=attempt + 1,
                    remaining_attempts=self.max_retries - attempt,
                    delay_ms=delay_ms,
                )
                await self._sleep(delay_ms / 1000)

        self.logger.log_event(
            event_type="technical",
            event_name="tool_call_failed",
            severity="error",
            data={
                "provider": self.client_name,
                "operation": operation_name,
                "error": str(last_error),
                "attempts": self.max_retries + 1,
            }
        )
        raise ToolCallFailed(
            provider=self.client_name,
            operation=operation_name,
            message=str(last_error),
            attempts=self.max_retries + 1,
        ) from last_error

    def _record_attempt_failure(self, operation_name: str, error: BaseException, duration: float) -> None:
        self.last_error = str(error)
        self.connection_metrics["failed_attempts"] += 1
        self.connection_metrics["last_failure_time"] = datetime.now(timezone.utc).isoformat()
        metrics.record_tool_call(self.client_name, operation_name, "error", duration)

        if self.circuit_breaker.record_failure():
            metrics.CIRCUIT_OPENED.labels(provider=self.client_name).inc()
            self.logger.log_event(
                event_type="technical",
                event_name="circuit_breaker_opened",
                severity="warning",
                data={
                    "provider": self.client_name,
                    "failure_count": self.circuit_breaker.failure_count,
                    "reset_ms": self.circuit_breaker.reset_ms,
                }
            )
