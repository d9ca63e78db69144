# -*- coding: utf-8 -*-
"""Location: ./codemode/providers/stdio.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Connection to an external MCP server spawned over stdio.

The transport and session contexts are held on an ``AsyncExitStack``; open
and close must happen in the same task, which the server lifespan does.
"""

# Standard
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional

# Third-Party
import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

# First-Party
from codemode.models import ProviderSpec
from codemode.providers.base import ToolConnection
from codemode.services.logging_service import LoggingService

logger = LoggingService().get_logger(__name__)

# Raised by the anyio memory streams once the server process is gone
_TRANSPORT_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream, BrokenPipeError)


class StdioToolConnection(ToolConnection):
    """MCP client session over a child process's stdio."""

    def __init__(self, name: str, spec: ProviderSpec) -> None:
        """Describe the connection; nothing is spawned until :meth:`open`.

        Args:
            name: Provider name, used for logging.
            spec: Command line of the MCP server.
        """
        self.name = name
        self.spec = spec
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Spawn the server and run the MCP initialize handshake."""
        stack = AsyncExitStack()
        try:
            params = StdioServerParameters(command=self.spec.command, args=list(self.spec.args), env=self.spec.env)
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session
        self._closed = False
        logger.info(f"Connected tool provider {self.name}: {self.spec.command} {' '.join(self.spec.args)}")

    def _require_session(self) -> ClientSession:
        if self._closed or self._session is None:
            raise anyio.ClosedResourceError()
        return self._session

    async def list_tools(self) -> List[Dict[str, Any]]:
        session = self._require_session()
        try:
            response = await session.list_tools()
        except _TRANSPORT_ERRORS:
            self._closed = True
            raise
        return [tool.model_dump(by_alias=True, mode="json", exclude_none=True) for tool in response.tools]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = self._require_session()
        try:
            result = await session.call_tool(name, arguments or {})
        except _TRANSPORT_ERRORS:
            self._closed = True
            raise
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)

    async def close(self) -> None:
        self._closed = True
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()
