"""
Unified Configuration System for the Investigation Engine

Single source of truth for all configuration using pydantic-settings.

ARCHITECTURAL PRINCIPLES:
- Only this module accesses environment variables directly
- All other modules receive configuration via dependency injection
- Type-safe validation with automatic conversion
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


# =============================================================================
# NESTED CONFIGURATION SECTIONS
# =============================================================================

DEFAULT_GATHER_AGENTS = ["gather-logs", "gather-changes", "gather-slack", "gather-metrics"]


class EngineSettings(BaseSettings):
    """Orchestrator engine, hypothesis loop and agent runner configuration"""
    worker_concurrency: int = Field(default=3, ge=1)

    # Gather fan-out, merged in this order
    gather_agents: List[str] = Field(default_factory=lambda: list(DEFAULT_GATHER_AGENTS))

    # Hypothesis / verification loop
    hypothesis_confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    hypothesis_max_iterations: int = Field(default=5, ge=1)

    # Agent tool-use loop
    agent_max_iterations: int = Field(default=50, ge=1)
    agent_max_tokens: int = Field(default=16384, ge=1)
    agents_dir: Optional[Path] = None
    skills_dir: Optional[Path] = None

    # Deliver phase
    report_summary_chars: int = Field(default=1000, ge=1)
    callback_timeout_seconds: float = Field(default=10.0, gt=0)
    report_url_template: str = "/api/v1/investigations/{investigation_id}/report"

    model_config = {"env_prefix": "", "extra": "ignore"}

    @field_validator("gather_agents")
    @classmethod
    def validate_gather_agents(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one gather agent must be configured")
        if len(set(value)) != len(value):
            raise ValueError("gather agent names must be unique")
        return value


class ToolProviderSettings(BaseSettings):
    """Tool provider client resilience and provider list location"""
    config_path: Optional[Path] = None

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=200, ge=0)
    timeout_ms: int = Field(default=30000, gt=0)

    circuit_threshold: int = Field(default=5, ge=1)
    circuit_reset_ms: int = Field(default=60000, ge=0)

    # Used for providers whose auth is a vault:// secret reference
    service_account_token: Optional[SecretStr] = None

    model_config = {"env_prefix": "TOOL_PROVIDER_", "extra": "ignore"}


class LLMSettings(BaseSettings):
    """Language-model completion service configuration"""
    anthropic_api_key: Optional[SecretStr] = None
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_version: str = "2023-06-01"
    request_timeout: int = Field(default=120, gt=0)

    model_aliases: Dict[str, str] = Field(default_factory=lambda: {
        "haiku": "claude-haiku-4-5-20251001",
        "sonnet": "claude-sonnet-4-6",
    })
    default_model_alias: str = "sonnet"
    # agent name -> alias; takes precedence over the agent definition's model
    agent_model_overrides: Dict[str, str] = Field(default_factory=dict)

    model_config = {"env_prefix": "", "extra": "ignore"}


class QueueSettings(BaseSettings):
    """Durable job queue and investigation store configuration"""
    # memory: single-process queue and store, nothing survives a restart
    backend: StorageBackend = Field(default=StorageBackend.REDIS, validation_alias="STORAGE_BACKEND")
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "investigations"
    poll_timeout_seconds: float = Field(default=5.0, gt=0)
    dedup_ttl_seconds: int = Field(default=86400, gt=0)

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class ObservabilitySettings(BaseSettings):
    """Tracing and metrics configuration"""
    service_name: str = Field(default="investigation-engine", validation_alias="OTEL_SERVICE_NAME")
    tracing_enabled: bool = False
    otlp_endpoint: Optional[str] = Field(default=None, validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT")

    metrics_enabled: bool = True
    metrics_port: int = 9090

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = Field(default=LogLevel.INFO, validation_alias="LOG_LEVEL")
    structured_logging: bool = True

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class InvestigatorSettings(BaseSettings):
    """
    Unified configuration for the investigation engine.

    All configuration access goes through this class via dependency injection.
    """

    engine: EngineSettings = Field(default_factory=EngineSettings)
    tool_providers: ToolProviderSettings = Field(default_factory=ToolProviderSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "validate_assignment": True,
        "extra": "ignore"
    }


# =============================================================================
# SINGLETON MANAGEMENT
# =============================================================================

_settings_instance: Optional[InvestigatorSettings] = None


def get_settings() -> InvestigatorSettings:
    """
    Get global settings instance (singleton pattern).

    This is the ONLY function that should be used to access configuration.
    Components receive the sections they need through their constructors.

    Raises:
        ConfigurationException: If settings validation fails
    """
    global _settings_instance
    if _settings_instance is None:
        try:
            from dotenv import load_dotenv

            load_dotenv(override=False)
            _settings_instance = InvestigatorSettings()
        except Exception as e:
            from investigator.exceptions import ConfigurationException
            raise ConfigurationException(
                f"Settings initialization failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e
    return _settings_instance


def reset_settings() -> None:
    """
    Reset settings instance (primarily for testing).

    Forces recreation of settings on next get_settings() call.
    """
    global _settings_instance
    _settings_instance = None
