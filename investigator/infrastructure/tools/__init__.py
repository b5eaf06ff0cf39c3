from .client import (
    NetworkToolProviderClient,
    SubprocessToolProviderClient,
    ToolProviderClient,
    create_tool_provider_client,
)
from .registry import (
    ToolProviderEntry,
    ToolProviderRegistry,
    load_tool_provider_configs,
    resolve_access_key,
)

__all__ = [
    "NetworkToolProviderClient",
    "SubprocessToolProviderClient",
    "ToolProviderClient",
    "create_tool_provider_client",
    "ToolProviderEntry",
    "ToolProviderRegistry",
    "load_tool_provider_configs",
    "resolve_access_key",
]
