# -*- coding: utf-8 -*-
"""Unit tests for the worker-side tool bridge."""

# Standard
import asyncio
import contextlib
import os
import socket
import threading
from typing import Any, Dict, List

# Third-Party
import pytest

# First-Party
from codemode.errors import ChannelUnavailableError, ToolError
from codemode.sandbox import IPC_FD_ENV
from codemode.sandbox.bridge import call_tool, get_bridge, ToolBridge, unwrap_tool_result
from codemode.sandbox.protocol import decode_request, encode_message, ErrorResponse, ResultResponse


def test_unwrap_prefers_structured_content() -> None:
    data = {"content": [{"type": "text", "text": "ignored"}], "structuredContent": {"rows": 3}}

    assert unwrap_tool_result("db", "count", data) == {"rows": 3}


def test_unwrap_skips_non_text_items() -> None:
    data = {"content": [{"type": "image", "data": "...", "mimeType": "image/png"}, {"type": "text", "text": "caption"}]}

    assert unwrap_tool_result("img", "render", data) == "caption"


def test_unwrap_error_embeds_provider_message() -> None:
    data = {"isError": True, "content": [{"type": "text", "text": "ENOENT: No such file or directory, missing.txt"}]}

    with pytest.raises(ToolError, match="filesystem.read_file failed: ENOENT.*missing.txt"):
        unwrap_tool_result("filesystem", "read_file", data)


def test_unwrap_passes_through_non_dict() -> None:
    assert unwrap_tool_result("p", "t", [1, 2]) == [1, 2]


class FakeHost:
    """Host end of a socket pair answering requests from a script."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.requests: List[Dict[str, Any]] = []

    async def serve(self, replies: Dict[str, Any], close_after: int = -1) -> None:
        reader, writer = await asyncio.open_connection(sock=self.sock)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    return
                request = decode_request(line)
                self.requests.append({"provider": request.provider_name, "tool": request.tool_name, "arguments": request.arguments})
                if len(self.requests) == close_after:
                    return
                reply = replies[request.tool_name]
                if isinstance(reply, str):
                    writer.write(encode_message(ErrorResponse(id=request.id, error=reply)))
                else:
                    # An unrelated id first; the bridge must ignore it
                    writer.write(encode_message(ResultResponse(id="unrelated", data={})))
                    writer.write(b"not json\n")
                    writer.write(encode_message(ResultResponse(id=request.id, data=reply)))
                await writer.drain()
        finally:
            writer.close()


@pytest.fixture
def channel():
    host, worker = socket.socketpair()
    fd = worker.detach()
    yield FakeHost(host), fd
    with contextlib.suppress(OSError):
        os.close(fd)


@pytest.mark.asyncio
async def test_call_round_trip(channel) -> None:
    host, fd = channel
    server = asyncio.create_task(host.serve({"echo": {"content": [{"type": "text", "text": "X"}], "isError": False}}))
    bridge = ToolBridge(fd)

    result = await bridge.call("echo", "echo", {"text": "X"})

    assert result == "X"
    assert host.requests == [{"provider": "echo", "tool": "echo", "arguments": {"text": "X"}}]
    assert bridge.pending_count == 0
    server.cancel()


@pytest.mark.asyncio
async def test_concurrent_calls_are_correlated_by_id(channel) -> None:
    host, fd = channel
    replies = {f"t{i}": {"content": [{"type": "text", "text": str(i)}]} for i in range(5)}
    server = asyncio.create_task(host.serve(replies))
    bridge = ToolBridge(fd)

    results = await asyncio.gather(*(bridge.call("p", f"t{i}") for i in range(5)))

    assert results == [0, 1, 2, 3, 4]
    server.cancel()


@pytest.mark.asyncio
async def test_error_envelope_raises_tool_error(channel) -> None:
    host, fd = channel
    server = asyncio.create_task(host.serve({"read": "tool provider not connected: nope"}))
    bridge = ToolBridge(fd)

    with pytest.raises(ToolError, match="tool provider not connected: nope"):
        await bridge.call("nope", "read")
    server.cancel()


@pytest.mark.asyncio
async def test_host_closing_fails_pending_calls(channel) -> None:
    host, fd = channel
    server = asyncio.create_task(host.serve({}, close_after=1))
    bridge = ToolBridge(fd)

    with pytest.raises(ChannelUnavailableError, match="IPC channel not available"):
        await bridge.call("p", "t")
    with pytest.raises(ChannelUnavailableError):
        await bridge.call("p", "again")
    await server


def test_get_bridge_without_descriptor(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(IPC_FD_ENV, raising=False)

    with pytest.raises(ChannelUnavailableError, match=f"IPC channel not available: {IPC_FD_ENV} is not set"):
        get_bridge()


def test_get_bridge_rejects_bad_descriptor(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(IPC_FD_ENV, "abc")

    with pytest.raises(ChannelUnavailableError, match="is not a descriptor"):
        get_bridge()


@pytest.mark.asyncio
async def test_call_tool_fails_fast_without_channel(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(IPC_FD_ENV, raising=False)

    with pytest.raises(ChannelUnavailableError):
        await asyncio.wait_for(call_tool("fs", "read_file", {"path": "a"}), timeout=1)


def test_bridge_rebinds_after_event_loop_closes(channel) -> None:
    host, fd = channel

    def _answer() -> None:
        with host.sock.makefile("rb") as frames:
            for line in frames:
                request = decode_request(line)
                reply = {"content": [{"type": "text", "text": request.arguments["text"]}]}
                host.sock.sendall(encode_message(ResultResponse(id=request.id, data=reply)))

    threading.Thread(target=_answer, daemon=True).start()
    bridge = ToolBridge(fd)

    first = asyncio.run(bridge.call("echo", "echo", {"text": "a"}))
    second = asyncio.run(bridge.call("echo", "echo", {"text": "b"}))

    assert (first, second) == ("a", "b")
    assert bridge.pending_count == 0
