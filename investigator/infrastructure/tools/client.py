"""
Tool Provider Clients

One client per configured tool provider. Both transports speak the Model
Context Protocol through the ``mcp`` SDK and share the resilience policy of
:class:`BaseExternalClient` (circuit breaker, bounded retry, per-attempt
timeout):

- NetworkToolProviderClient: streamable HTTP endpoint, access key sent as
  the ``x-user-access-key`` header
- SubprocessToolProviderClient: spawned stdio server, access key passed as
  the ``USER_ACCESS_KEY`` environment variable

The MCP session is owned by a dedicated background task for its whole
lifetime so that its transport contexts are entered and exited in the same
task regardless of which worker triggered the connect.
"""

import asyncio
from abc import abstractmethod
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional, Tuple

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from investigator.infrastructure.base_client import BaseExternalClient, CircuitBreaker
from investigator.models.interfaces import IToolProvider
from investigator.models.tools import (
    ToolCallResult,
    ToolInfo,
    ToolProviderConfig,
    ToolResultContent,
    Transport,
)

ACCESS_KEY_HEADER = "x-user-access-key"
ACCESS_KEY_ENV = "USER_ACCESS_KEY"


class ToolProviderClient(BaseExternalClient, IToolProvider):
    """Connection lifecycle plus resilient ``list_tools`` / ``call_tool``."""

    def __init__(
        self,
        config: ToolProviderConfig,
        access_key: Optional[str] = None,
        max_retries: int = 3,
        base_delay_ms: int = 200,
        timeout_ms: int = 30000,
        circuit_breaker: Optional[CircuitBreaker] = None,
        **kwargs
    ):
        super().__init__(
            client_name=config.name,
            max_retries=max_retries,
            base_delay_ms=base_delay_ms,
            timeout_ms=timeout_ms,
            circuit_breaker=circuit_breaker,
            **kwargs
        )
        self.config = config
        self.access_key = access_key

        self._session: Optional[ClientSession] = None
        self._runner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None
        self._connect_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def transport(self) -> Transport:
        return self.config.transport

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @abstractmethod
    async def _open_transport(self, stack: AsyncExitStack) -> Tuple[Any, Any]:
        """Enter the transport context on ``stack`` and return its streams."""
        pass

    async def connect(self) -> None:
        """Open the transport and initialize the MCP session.

        Bounded by the per-attempt timeout. Raises the underlying error when
        the provider cannot be reached. Concurrent callers wait for the
        connect already in progress.
        """
        async with self._connect_lock:
            if self.is_connected:
                return
            await self._connect()

    async def _connect(self) -> None:
        await self.disconnect()

        loop = asyncio.get_running_loop()
        ready: asyncio.Future = loop.create_future()
        self._closing = asyncio.Event()
        self._runner = asyncio.create_task(
            self._run_session(ready, self._closing),
            name=f"tool-provider-{self.name}",
        )

        try:
            await asyncio.wait_for(asyncio.shield(ready), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            await self.disconnect()
            self.last_error = f'Connecting to tool provider "{self.name}" timed out after {self.timeout_ms}ms'
            raise TimeoutError(self.last_error)
        except Exception as connect_error:
            await self.disconnect()
            self.last_error = str(connect_error)
            raise

        self.logger.log_event(
            event_type="system",
            event_name="tool_provider_connected",
            severity="info",
            data={"provider": self.name, "transport": self.transport.value}
        )

    async def _run_session(self, ready: asyncio.Future, closing: asyncio.Event) -> None:
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await self._open_transport(stack)
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
                self._session = session
                if not ready.done():
                    ready.set_result(None)
                await closing.wait()
        except Exception as session_error:
            if not ready.done():
                ready.set_exception(session_error)
            else:
                self.last_error = str(session_error)
                self.logger.error(
                    f"Tool provider session ended unexpectedly: {self.name}",
                    error=session_error,
                )
        finally:
            self._session = None

    async def disconnect(self) -> None:
        """Close the session and transport; safe to call when not connected."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        if self._closing is not None:
            self._closing.set()
        if not runner.done():
            try:
                await asyncio.wait_for(asyncio.shield(runner), timeout=self.timeout_ms / 1000)
            except asyncio.TimeoutError:
                runner.cancel()
                await asyncio.gather(runner, return_exceptions=True)
        self._session = None
        self._closing = None

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ConnectionError(f'Tool provider "{self.name}" is not connected')
        return self._session

    async def list_tools(self) -> List[ToolInfo]:
        return await self.call_external("list_tools", self._list_tools_once)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolCallResult:
        return await self.call_external("call_tool", self._call_tool_once, name, arguments or {})

    async def _list_tools_once(self) -> List[ToolInfo]:
        result = await self._require_session().list_tools()
        tools = []
        for tool in result.tools:
            schema = tool.inputSchema if isinstance(tool.inputSchema, dict) else {}
            tools.append(ToolInfo(
                name=tool.name,
                description=tool.description or "",
                input_schema=schema or {"type": "object", "properties": {}},
            ))
        return tools

    async def _call_tool_once(self, name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        result = await self._require_session().call_tool(name, arguments=arguments)
        return ToolCallResult(
            content=[self._convert_content(item) for item in (result.content or [])],
            is_error=bool(result.isError),
        )

    @staticmethod
    def _convert_content(item: Any) -> ToolResultContent:
        content_type = getattr(item, "type", "text")
        if content_type == "resource":
            resource = getattr(item, "resource", None)
            return ToolResultContent(
                type="resource",
                text=getattr(resource, "text", None),
                mime_type=getattr(resource, "mimeType", None),
                uri=str(getattr(resource, "uri", "")) or None,
            )
        uri = getattr(item, "uri", None)
        return ToolResultContent(
            type=content_type,
            text=getattr(item, "text", None),
            data=getattr(item, "data", None),
            mime_type=getattr(item, "mimeType", None),
            uri=str(uri) if uri is not None else None,
        )

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "transport": self.transport.value,
            "connected": self.is_connected,
            "circuit_state": self.circuit_breaker.get_state().value,
            "last_error": self.last_error,
            **self.connection_metrics,
        }


class NetworkToolProviderClient(ToolProviderClient):
    """Tool provider reached over MCP streamable HTTP."""

    async def _open_transport(self, stack: AsyncExitStack) -> Tuple[Any, Any]:
        headers = {ACCESS_KEY_HEADER: self.access_key} if self.access_key else None
        read_stream, write_stream, _get_session_id = await stack.enter_async_context(
            streamablehttp_client(self.config.url, headers=headers)
        )
        return read_stream, write_stream


class SubprocessToolProviderClient(ToolProviderClient):
    """Tool provider spawned as a child process speaking MCP over stdio."""

    def server_parameters(self) -> StdioServerParameters:
        env = {**get_default_environment(), **self.config.env}
        if self.access_key:
            env[ACCESS_KEY_ENV] = self.access_key
        return StdioServerParameters(command=self.config.command, args=list(self.config.args), env=env)

    async def _open_transport(self, stack: AsyncExitStack) -> Tuple[Any, Any]:
        return await stack.enter_async_context(stdio_client(self.server_parameters()))


def create_tool_provider_client(config: ToolProviderConfig, access_key: Optional[str] = None, **kwargs) -> ToolProviderClient:
    """Build the client matching ``config.transport``."""
    if config.transport == Transport.SUBPROCESS:
        return SubprocessToolProviderClient(config, access_key=access_key, **kwargs)
    return NetworkToolProviderClient(config, access_key=access_key, **kwargs)
