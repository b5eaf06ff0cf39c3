from .settings import (
    EngineSettings,
    InvestigatorSettings,
    LLMSettings,
    LoggingSettings,
    ObservabilitySettings,
    QueueSettings,
    StorageBackend,
    ToolProviderSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "EngineSettings",
    "InvestigatorSettings",
    "LLMSettings",
    "LoggingSettings",
    "ObservabilitySettings",
    "QueueSettings",
    "StorageBackend",
    "ToolProviderSettings",
    "get_settings",
    "reset_settings",
]
