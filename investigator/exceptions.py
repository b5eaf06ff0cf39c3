"""Custom exceptions for the investigation engine."""

from typing import Any, Dict, Optional


class InvestigatorException(Exception):
    """Base exception for all investigation engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationException(InvestigatorException):
    """Raised when configuration is invalid."""
    pass


class ExternalServiceException(InvestigatorException):
    """Raised when an external service call fails."""
    pass


class ProviderUnavailable(ExternalServiceException):
    """Raised when a tool provider's circuit breaker rejects the call.

    Never retried by the client that raised it.
    """

    def __init__(self, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f'Circuit breaker OPEN for tool provider "{provider}" - skipping call',
            details,
        )
        self.provider = provider


class ToolCallFailed(ExternalServiceException):
    """Raised when a tool provider call still fails after all retries."""

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        attempts: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.provider = provider
        self.operation = operation
        self.attempts = attempts


class ModelCallFailed(ExternalServiceException):
    """Raised when the language-model completion service fails."""
    pass


class CallbackDeliveryFailure(ExternalServiceException):
    """Raised when the completion callback POST fails."""
    pass


class ParseFailure(InvestigatorException):
    """Raised when agent output has no usable structured payload."""
    pass


class PersistenceFailure(InvestigatorException):
    """Raised when a write to the investigation store fails."""
    pass


class UnknownProviderError(InvestigatorException):
    """Raised when a tool provider name is not configured."""
    pass


class PhaseFailure(InvestigatorException):
    """Raised when a pipeline phase fails; fatal to the investigation.

    The message is the underlying error's message so it can be stored as the
    investigation's error text unchanged.
    """

    def __init__(self, phase: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.phase = phase
