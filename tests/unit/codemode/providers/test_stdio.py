# -*- coding: utf-8 -*-
"""Unit tests for the stdio MCP provider connection (SDK mocked)."""

# Standard
from contextlib import asynccontextmanager
from typing import Any, List, Optional
from unittest.mock import AsyncMock, patch

# Third-Party
import anyio
from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool
import pytest

# First-Party
from codemode.models import ProviderSpec
from codemode.providers.stdio import StdioToolConnection


class FakeClientSession:
    instances: List["FakeClientSession"] = []
    initialize_error: Optional[Exception] = None

    def __init__(self, read_stream: Any, write_stream: Any) -> None:
        self.streams = (read_stream, write_stream)
        self.initialize = AsyncMock(side_effect=FakeClientSession.initialize_error)
        self.call_tool = AsyncMock(return_value=CallToolResult(content=[TextContent(type="text", text="X")], isError=False))
        self.list_tools = AsyncMock(return_value=ListToolsResult(tools=[Tool(name="read_file", description="Read", inputSchema={"type": "object"})]))
        self.exited = False
        FakeClientSession.instances.append(self)

    async def __aenter__(self) -> "FakeClientSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.exited = True


@pytest.fixture
def fake_sdk():
    FakeClientSession.instances = []
    FakeClientSession.initialize_error = None
    params_seen: List[Any] = []

    @asynccontextmanager
    async def fake_stdio_client(params):
        params_seen.append(params)
        yield ("read", "write")

    with patch("codemode.providers.stdio.stdio_client", fake_stdio_client), patch("codemode.providers.stdio.ClientSession", FakeClientSession):
        yield params_seen


@pytest.mark.asyncio
async def test_open_call_list_close(fake_sdk) -> None:
    connection = StdioToolConnection("fs", ProviderSpec(command="npx", args=["-y", "server-filesystem"], env={"A": "1"}))
    assert connection.closed is True

    await connection.open()
    result = await connection.call_tool("read_file", {"path": "a"})
    tools = await connection.list_tools()
    await connection.close()

    params = fake_sdk[0]
    assert (params.command, params.args, params.env) == ("npx", ["-y", "server-filesystem"], {"A": "1"})
    assert result["content"] == [{"type": "text", "text": "X"}]
    assert result["isError"] is False
    assert tools[0]["name"] == "read_file"
    assert tools[0]["inputSchema"] == {"type": "object"}
    session = FakeClientSession.instances[0]
    session.call_tool.assert_awaited_once_with("read_file", {"path": "a"})
    assert session.exited is True
    assert connection.closed is True


@pytest.mark.asyncio
async def test_failed_handshake_unwinds(fake_sdk) -> None:
    connection = StdioToolConnection("fs", ProviderSpec(command="missing-binary"))

    FakeClientSession.initialize_error = RuntimeError("handshake failed")

    with pytest.raises(RuntimeError, match="handshake failed"):
        await connection.open()

    assert connection.closed is True
    assert FakeClientSession.instances[0].exited is True


@pytest.mark.asyncio
async def test_transport_failure_marks_connection_closed(fake_sdk) -> None:
    connection = StdioToolConnection("fs", ProviderSpec(command="npx"))
    await connection.open()
    FakeClientSession.instances[0].call_tool.side_effect = anyio.ClosedResourceError()

    with pytest.raises(anyio.ClosedResourceError):
        await connection.call_tool("read_file", {})

    assert connection.closed is True
    with pytest.raises(anyio.ClosedResourceError):
        await connection.list_tools()
    await connection.close()
