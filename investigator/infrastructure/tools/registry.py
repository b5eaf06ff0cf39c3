"""
Tool Provider Registry

Holds every configured tool provider, connects them lazily, resolves tool
names to their owning provider and aggregates provider health.

Provider list format (YAML)::

    servers:
      - name: grafana
        transport: network
        url: https://mcp.example.net/mcp?mcp=grafana
        auth: vault://secrets/grafana
      - name: octocode
        transport: subprocess
        command: npx
        args: ["-y", "@mcp-s/mcp"]
        env: {MCP: octocode}
        auth: none
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from investigator.config.settings import ToolProviderSettings
from investigator.exceptions import ConfigurationException, UnknownProviderError
from investigator.infrastructure.base_client import CircuitBreaker
from investigator.infrastructure.tools.client import ToolProviderClient, create_tool_provider_client
from investigator.models.interfaces import IToolProvider, IToolRegistry
from investigator.models.tools import ProviderHealth, ToolInfo, ToolProviderConfig

logger = logging.getLogger(__name__)

VAULT_PREFIX = "vault://"


def load_tool_provider_configs(path: Union[str, Path]) -> List[ToolProviderConfig]:
    """Parse the provider list from a YAML file.

    Raises:
        ConfigurationException: Missing file, malformed YAML, no top-level
            ``servers`` list, or an invalid provider entry
    """
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationException(f"Tool provider config not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Invalid YAML in tool provider config {path}: {e}") from e

    return parse_tool_provider_configs(document, source=str(path))


def parse_tool_provider_configs(document: Any, source: str = "<memory>") -> List[ToolProviderConfig]:
    if not isinstance(document, dict) or not isinstance(document.get("servers"), list):
        raise ConfigurationException(
            f'Invalid tool provider config {source}: expected a top-level "servers" list'
        )

    configs: List[ToolProviderConfig] = []
    seen = set()
    for index, raw in enumerate(document["servers"]):
        try:
            config = ToolProviderConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid tool provider entry #{index} in {source}: {e}",
                details={"entry": index},
            ) from e
        if config.name in seen:
            raise ConfigurationException(f'Duplicate tool provider name "{config.name}" in {source}')
        seen.add(config.name)
        configs.append(config)
    return configs


def resolve_access_key(auth: Optional[str], service_account_token: Optional[str]) -> Optional[str]:
    """Map an ``auth`` entry to the key sent to the provider.

    ``none`` or empty means no key; a ``vault://`` reference resolves to the
    service-account token; anything else is a literal key.
    """
    if not auth or auth.strip().lower() == "none":
        return None
    if auth.startswith(VAULT_PREFIX):
        return service_account_token or None
    return auth


@dataclass
class ToolProviderEntry:
    config: ToolProviderConfig
    client: ToolProviderClient
    connected: bool = False
    last_error: Optional[str] = None
    connect_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ToolProviderRegistry(IToolRegistry):
    """Registry over network and subprocess tool providers."""

    def __init__(
        self,
        configs: List[ToolProviderConfig],
        settings: Optional[ToolProviderSettings] = None,
        client_factory: Callable[..., ToolProviderClient] = create_tool_provider_client,
    ):
        self.settings = settings or ToolProviderSettings()
        token = (
            self.settings.service_account_token.get_secret_value()
            if self.settings.service_account_token else None
        )

        self._entries: Dict[str, ToolProviderEntry] = {}
        for config in configs:
            client = client_factory(
                config,
                access_key=resolve_access_key(config.auth, token),
                max_retries=self.settings.max_retries,
                base_delay_ms=self.settings.base_delay_ms,
                timeout_ms=self.settings.timeout_ms,
                circuit_breaker=CircuitBreaker(
                    threshold=self.settings.circuit_threshold,
                    reset_ms=self.settings.circuit_reset_ms,
                ),
            )
            self._entries[config.name] = ToolProviderEntry(config=config, client=client)

        self._tool_index: Dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: ToolProviderSettings) -> "ToolProviderRegistry":
        configs = load_tool_provider_configs(settings.config_path) if settings.config_path else []
        if not configs:
            logger.warning("No tool providers configured; agents will run without tools")
        return cls(configs, settings=settings)

    def _entry(self, name: str) -> ToolProviderEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownProviderError(f'Unknown tool provider: "{name}"')
        return entry

    async def get_client(self, name: str) -> ToolProviderClient:
        """Return a connected client, connecting lazily on first use.

        A failed connect is recorded and re-attempted on the next call.
        Concurrent first uses share a single connect.
        """
        entry = self._entry(name)
        if entry.connected and entry.client.is_connected:
            return entry.client

        async with entry.connect_lock:
            if entry.connected and entry.client.is_connected:
                return entry.client
            try:
                await entry.client.connect()
            except Exception as e:
                entry.connected = False
                entry.last_error = str(e)
                logger.warning(f"Failed to connect tool provider {name}: {e}")
                raise
            entry.connected = True
            entry.last_error = None
        return entry.client

    def list_servers(self) -> List[ProviderHealth]:
        snapshots = []
        for entry in self._entries.values():
            breaker = entry.client.circuit_breaker
            snapshots.append(ProviderHealth(
                name=entry.config.name,
                transport=entry.config.transport,
                connected=entry.connected,
                circuit_state=breaker.get_state().value,
                healthy=entry.connected and breaker.is_call_allowed(),
                last_error=entry.last_error or entry.client.last_error,
            ))
        return snapshots

    async def health_check(self) -> Dict[str, Any]:
        """Try to connect every provider, then report aggregate health."""
        for name in self._entries:
            try:
                await self.get_client(name)
            except Exception:
                # Already recorded on the entry
                continue

        servers = self.list_servers()
        return {
            "healthy": all(server.healthy for server in servers),
            "servers": [server.model_dump(mode="json") for server in servers],
        }

    async def disconnect_all(self) -> None:
        for name, entry in self._entries.items():
            if not entry.connected:
                continue
            try:
                await entry.client.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting tool provider {name}: {e}")
            entry.connected = False
        self._tool_index.clear()

    # IToolRegistry

    def resolve_provider(self, tool_name: str) -> Optional[IToolProvider]:
        provider_name = self._tool_index.get(tool_name)
        if provider_name is None:
            return None
        return self._entries[provider_name].client

    def list_providers(self) -> List[str]:
        return list(self._entries)

    async def list_all_tools(self) -> List[ToolInfo]:
        """Collect every reachable provider's tools and rebuild the tool index.

        A tool name advertised by more than one provider resolves to the first
        provider in configuration order.
        """
        names = list(self._entries)
        results = await asyncio.gather(
            *(self._list_provider_tools(name) for name in names),
            return_exceptions=True,
        )

        catalog: List[ToolInfo] = []
        index: Dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning(f"Skipping tools of provider {name}: {result}")
                continue
            for tool in result:
                if tool.name in index:
                    logger.warning(
                        f'Tool "{tool.name}" from {name} shadowed by provider {index[tool.name]}'
                    )
                    continue
                index[tool.name] = name
                catalog.append(tool)

        self._tool_index = index
        return catalog

    async def _list_provider_tools(self, name: str) -> List[ToolInfo]:
        client = await self.get_client(name)
        return await client.list_tools()
