"""Tests for the MCP-backed tool provider clients."""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from investigator.exceptions import ToolCallFailed
from investigator.infrastructure.tools.client import (
    ACCESS_KEY_ENV,
    ACCESS_KEY_HEADER,
    NetworkToolProviderClient,
    SubprocessToolProviderClient,
    create_tool_provider_client,
)
from investigator.models.tools import ToolProviderConfig, Transport
from tests.test_doubles import RecordingSleep


@pytest.fixture
def network_config():
    return ToolProviderConfig(name="grafana", transport="http", url="http://grafana-mcp:8080/mcp")


@pytest.fixture
def subprocess_config():
    return ToolProviderConfig(
        name="kubectl",
        transport="stdio",
        command="kubectl-mcp",
        args=["--read-only"],
        env={"KUBECONFIG": "/etc/kube/config"},
    )


def connected_client(config, session, **kwargs):
    kwargs.setdefault("sleep", RecordingSleep())
    client = create_tool_provider_client(config, **kwargs)
    client._session = session
    return client


class TestClientFactory:

    def test_network_transport(self, network_config):
        client = create_tool_provider_client(network_config, access_key="k")
        assert isinstance(client, NetworkToolProviderClient)
        assert client.transport == Transport.NETWORK
        assert client.name == "grafana"

    def test_subprocess_transport(self, subprocess_config):
        client = create_tool_provider_client(subprocess_config)
        assert isinstance(client, SubprocessToolProviderClient)
        assert client.is_connected is False

    def test_retry_settings_forwarded(self, network_config):
        client = create_tool_provider_client(network_config, max_retries=1, base_delay_ms=50, timeout_ms=500)
        assert (client.max_retries, client.base_delay_ms, client.timeout_ms) == (1, 50, 500)


class TestAccessKeyPropagation:

    def test_subprocess_env_carries_access_key(self, subprocess_config):
        client = SubprocessToolProviderClient(subprocess_config, access_key="secret-123")
        params = client.server_parameters()

        assert params.command == "kubectl-mcp"
        assert params.args == ["--read-only"]
        assert params.env[ACCESS_KEY_ENV] == "secret-123"
        assert params.env["KUBECONFIG"] == "/etc/kube/config"

    def test_subprocess_env_without_access_key(self, subprocess_config):
        params = SubprocessToolProviderClient(subprocess_config).server_parameters()
        assert ACCESS_KEY_ENV not in params.env

    @pytest.mark.asyncio
    async def test_network_sends_access_key_header(self, network_config):
        seen = {}

        @asynccontextmanager
        async def fake_transport(url, headers=None):
            seen["url"], seen["headers"] = url, headers
            yield "read", "write", lambda: "session-id"

        client = NetworkToolProviderClient(network_config, access_key="secret-123")
        with patch("investigator.infrastructure.tools.client.streamablehttp_client", fake_transport):
            async with AsyncExitStack() as stack:
                streams = await client._open_transport(stack)

        assert streams == ("read", "write")
        assert seen["url"] == "http://grafana-mcp:8080/mcp"
        assert seen["headers"] == {ACCESS_KEY_HEADER: "secret-123"}

    @pytest.mark.asyncio
    async def test_network_without_access_key_sends_no_headers(self, network_config):
        seen = {}

        @asynccontextmanager
        async def fake_transport(url, headers=None):
            seen["headers"] = headers
            yield "read", "write", None

        client = NetworkToolProviderClient(network_config)
        with patch("investigator.infrastructure.tools.client.streamablehttp_client", fake_transport):
            async with AsyncExitStack() as stack:
                await client._open_transport(stack)

        assert seen["headers"] is None


class TestConnection:

    @pytest.mark.asyncio
    async def test_connect_failure_raises_and_stays_disconnected(self, network_config):
        client = NetworkToolProviderClient(network_config)
        client._open_transport = AsyncMock(side_effect=ConnectionRefusedError("connection refused"))

        with pytest.raises(ConnectionRefusedError):
            await client.connect()

        assert client.is_connected is False
        assert client.last_error == "connection refused"
        assert client._runner is None

    @pytest.mark.asyncio
    async def test_connect_timeout(self, network_config):
        client = NetworkToolProviderClient(network_config, timeout_ms=20)

        async def hang(stack):
            await asyncio.sleep(10)

        client._open_transport = hang

        with pytest.raises(TimeoutError, match="timed out after 20ms"):
            await client.connect()

        assert client.is_connected is False
        assert client._runner is None

    @pytest.mark.asyncio
    async def test_concurrent_connects_open_one_session(self, network_config):
        client = NetworkToolProviderClient(network_config)
        opens = []

        async def open_transport(stack):
            opens.append(1)
            await asyncio.sleep(0.01)
            return Mock(), Mock()

        class StubSession:
            def __init__(self, read_stream, write_stream):
                pass

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                return False

            async def initialize(self):
                await asyncio.sleep(0.01)

        client._open_transport = open_transport
        with patch("investigator.infrastructure.tools.client.ClientSession", StubSession):
            await asyncio.gather(*(client.connect() for _ in range(4)))
            assert len(opens) == 1
            assert client.is_connected is True
            await client.disconnect()

        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_disconnect_when_never_connected_is_noop(self, network_config):
        client = NetworkToolProviderClient(network_config)
        await client.disconnect()
        assert client.is_connected is False


class TestToolCalls:

    @pytest.mark.asyncio
    async def test_list_tools_normalizes_schema(self, network_config):
        session = Mock()
        session.list_tools = AsyncMock(return_value=SimpleNamespace(tools=[
            SimpleNamespace(name="query_metrics", description="Run PromQL",
                            inputSchema={"type": "object", "properties": {"q": {"type": "string"}}}),
            SimpleNamespace(name="list_dashboards", description=None, inputSchema=None),
        ]))
        client = connected_client(network_config, session)

        tools = await client.list_tools()

        assert [t.name for t in tools] == ["query_metrics", "list_dashboards"]
        assert tools[0].input_schema["properties"] == {"q": {"type": "string"}}
        assert tools[1].description == ""
        assert tools[1].input_schema == {"type": "object", "properties": {}}

    @pytest.mark.asyncio
    async def test_call_tool_converts_content(self, network_config):
        session = Mock()
        session.call_tool = AsyncMock(return_value=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="p99 latency 840ms"),
                SimpleNamespace(type="resource", resource=SimpleNamespace(
                    text="panel json", mimeType="application/json", uri="grafana://panel/7")),
            ],
            isError=False,
        ))
        client = connected_client(network_config, session)

        result = await client.call_tool("query_metrics", {"q": "latency"})

        session.call_tool.assert_awaited_once_with("query_metrics", arguments={"q": "latency"})
        assert result.is_error is False
        assert result.content[0].text == "p99 latency 840ms"
        assert result.content[1].type == "resource"
        assert result.content[1].uri == "grafana://panel/7"
        assert result.content[1].mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_call_tool_error_flag_is_preserved(self, network_config):
        session = Mock()
        session.call_tool = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="bad query")], isError=True))
        client = connected_client(network_config, session)

        result = await client.call_tool("query_metrics", {})

        assert result.is_error is True

    @pytest.mark.asyncio
    async def test_call_tool_retries_transport_errors(self, network_config):
        session = Mock()
        session.call_tool = AsyncMock(side_effect=[
            ConnectionResetError("reset by peer"),
            SimpleNamespace(content=[SimpleNamespace(type="text", text="ok")], isError=False),
        ])
        client = connected_client(network_config, session)

        result = await client.call_tool("query_metrics", {})

        assert result.content[0].text == "ok"
        assert session.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_call_tool_without_session_fails(self, network_config):
        client = create_tool_provider_client(network_config, max_retries=0)

        with pytest.raises(ToolCallFailed, match='Tool provider "grafana" is not connected'):
            await client.call_tool("query_metrics", {})

    def test_status_snapshot(self, network_config):
        client = create_tool_provider_client(network_config)
        status = client.status()

        assert status["name"] == "grafana"
        assert status["transport"] == "network"
        assert status["connected"] is False
        assert status["circuit_state"] == "closed"
        assert status["total_calls"] == 0
