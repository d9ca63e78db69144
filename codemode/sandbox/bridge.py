# -*- coding: utf-8 -*-
"""Location: ./codemode/sandbox/bridge.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Worker-side tool bridge.

Generated stubs call :func:`call_tool`; the bridge forwards the call to the
host over the worker's dedicated channel and waits for the matching reply.
Each outstanding call owns one future in a correlation table keyed by
request id. The reader task resolves a future exactly once and drops it
from the table.

Examples:
    >>> unwrap_tool_result("fs", "read", {"content": [{"type": "text", "text": "X"}], "isError": False})
    'X'
    >>> unwrap_tool_result("fs", "read", {"content": [{"type": "text", "text": '{"a": 1}'}]})
    {'a': 1}
    >>> unwrap_tool_result("fs", "read", {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]})
    'a\\nb'
    >>> unwrap_tool_result("fs", "read", {"foo": "bar"})
    {'foo': 'bar'}
    >>> unwrap_tool_result("fs", "read", {"isError": True, "content": [{"type": "text", "text": "ENOENT"}]})
    Traceback (most recent call last):
    ...
    codemode.errors.ToolError: fs.read failed: ENOENT
"""

# Standard
import asyncio
import os
import socket
from typing import Any, Dict, Optional, Union
import uuid

# Third-Party
import orjson

# First-Party
from codemode.errors import ChannelUnavailableError, ToolError
from codemode.sandbox import IPC_FD_ENV
from codemode.sandbox.protocol import CallToolRequest, decode_response, encode_message, ErrorResponse, iter_frames, MAX_FRAME_BYTES, ResultResponse

_CHANNEL_PREFIX = "IPC channel not available"


def _text_of(content: Any) -> str:
    """Join the text items of an MCP content list."""
    texts = []
    for item in content:
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
            texts.append(item["text"])
    return "\n".join(texts)


def unwrap_tool_result(provider_name: str, tool_name: str, data: Any) -> Any:
    """Turn an MCP tool result into the value user code sees.

    Args:
        provider_name: Provider the call went to.
        tool_name: Tool that was called.
        data: ``CallToolResult``-shaped payload from the host.

    Returns:
        Any: Structured content, parsed JSON text, plain text, or ``data``
        itself when it has no content list.

    Raises:
        ToolError: If the provider flagged the result as an error.
    """
    if not isinstance(data, dict):
        return data
    content = data.get("content")
    if data.get("isError"):
        detail = _text_of(content) if isinstance(content, list) else ""
        raise ToolError(f"{provider_name}.{tool_name} failed: {detail or orjson.dumps(data).decode()}")
    if data.get("structuredContent") is not None:
        return data["structuredContent"]
    if not isinstance(content, list):
        return data
    text = _text_of(content)
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return text


class ToolBridge:
    """Client end of the worker's broker channel."""

    def __init__(self, fd: int) -> None:
        """Wrap an inherited socket descriptor; nothing is opened yet.

        Args:
            fd: Descriptor number of the worker's end of the channel.
        """
        self._fd = fd
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sock: Optional[socket.socket] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional["asyncio.Task[None]"] = None
        self._pending: Dict[str, "asyncio.Future[Union[ResultResponse, ErrorResponse]]"] = {}
        self._closed_reason: Optional[str] = None

    @property
    def pending_count(self) -> int:
        """Number of calls still waiting for a reply."""
        return len(self._pending)

    async def _ensure_open(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is not None and self._loop is not loop:
            if not self._loop.is_closed():
                raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: channel is bound to another event loop")
            self._release()
        if self._closed_reason is not None:
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {self._closed_reason}")
        if self._writer is not None:
            return
        try:
            # Each loop gets its own duplicate so a finished loop's transport can be dropped
            sock = socket.socket(fileno=os.dup(self._fd))
        except OSError as exc:
            self._closed_reason = f"cannot open descriptor {self._fd}: {exc}"
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {self._closed_reason}") from exc
        try:
            reader, self._writer = await asyncio.open_connection(sock=sock, limit=MAX_FRAME_BYTES)
        except OSError as exc:
            sock.close()
            self._closed_reason = f"cannot open descriptor {self._fd}: {exc}"
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {self._closed_reason}") from exc
        self._sock = sock
        self._loop = loop
        self._reader_task = loop.create_task(self._pump(reader))

    def _release(self) -> None:
        """Forget the transport of a closed event loop."""
        if self._sock is not None:
            self._sock.close()
        self._sock = None
        self._writer = None
        self._reader_task = None
        self._loop = None

    async def _pump(self, reader: asyncio.StreamReader) -> None:
        reason: Optional[str] = "channel closed by host"
        try:
            async for frame in iter_frames(reader):
                response = decode_response(frame)
                if response is None:
                    continue
                future = self._pending.pop(response.id, None)
                if future is not None and not future.done():
                    future.set_result(response)
        except asyncio.CancelledError:
            # The loop is shutting down; the channel itself is still usable
            reason = None
            raise
        except (ConnectionError, OSError) as exc:
            reason = f"channel broken: {exc}"
        finally:
            if reason is not None:
                self._closed_reason = reason
            pending, self._pending = self._pending, {}
            for future in pending.values():
                if not future.done():
                    future.set_exception(ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {reason or 'event loop closed'}"))

    async def call(self, provider_name: str, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Send one tool call and wait for its reply.

        Args:
            provider_name: Provider to call.
            tool_name: Tool to call.
            arguments: Tool arguments.

        Returns:
            Any: The unwrapped tool result.

        Raises:
            ChannelUnavailableError: If the channel cannot be used.
            ToolError: If the host or the provider reported a failure.
        """
        await self._ensure_open()
        request = CallToolRequest(id=uuid.uuid4().hex, provider_name=provider_name, tool_name=tool_name, arguments=arguments or {})
        future: "asyncio.Future[Union[ResultResponse, ErrorResponse]]" = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            self._writer.write(encode_message(request))
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._pending.pop(request.id, None)
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {exc}") from exc

        response = await future
        if isinstance(response, ErrorResponse):
            raise ToolError(response.error)
        return unwrap_tool_result(provider_name, tool_name, response.data)


_bridge: Optional[ToolBridge] = None


def get_bridge() -> ToolBridge:
    """Return the process bridge, creating it from the environment.

    Returns:
        ToolBridge: The bridge for this worker.

    Raises:
        ChannelUnavailableError: If the channel variable is missing or invalid.
    """
    global _bridge  # pylint: disable=global-statement
    if _bridge is None:
        raw = os.environ.get(IPC_FD_ENV)
        if not raw:
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {IPC_FD_ENV} is not set")
        try:
            fd = int(raw)
        except ValueError as exc:
            raise ChannelUnavailableError(f"{_CHANNEL_PREFIX}: {IPC_FD_ENV}={raw!r} is not a descriptor") from exc
        _bridge = ToolBridge(fd)
    return _bridge


async def call_tool(provider_name: str, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
    """Call a tool through the host broker.

    Args:
        provider_name: Provider to call.
        tool_name: Tool to call.
        arguments: Tool arguments.

    Returns:
        Any: The unwrapped tool result.
    """
    return await get_bridge().call(provider_name, tool_name, arguments)
