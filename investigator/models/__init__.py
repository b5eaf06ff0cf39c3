from .investigation import (
    PHASES,
    AgentOutput,
    AgentRunRecord,
    Hypothesis,
    HypothesisLoopResult,
    Investigation,
    InvestigationJob,
    InvestigationReport,
    InvestigationStatus,
    Phase,
    PhaseResult,
    StopReason,
    TokenUsage,
    running_status,
    utc_now,
)
from .tools import (
    CompletionResponse,
    ProviderHealth,
    TextBlock,
    ToolCallResult,
    ToolInfo,
    ToolProviderConfig,
    ToolResultBlock,
    ToolResultContent,
    ToolUseBlock,
    Transport,
    Usage,
)

__all__ = [
    "PHASES",
    "AgentOutput",
    "AgentRunRecord",
    "Hypothesis",
    "HypothesisLoopResult",
    "Investigation",
    "InvestigationJob",
    "InvestigationReport",
    "InvestigationStatus",
    "Phase",
    "PhaseResult",
    "StopReason",
    "TokenUsage",
    "running_status",
    "utc_now",
    "CompletionResponse",
    "ProviderHealth",
    "TextBlock",
    "ToolCallResult",
    "ToolInfo",
    "ToolProviderConfig",
    "ToolResultBlock",
    "ToolResultContent",
    "ToolUseBlock",
    "Transport",
    "Usage",
]
