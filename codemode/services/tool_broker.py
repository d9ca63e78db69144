# -*- coding: utf-8 -*-
"""Location: ./codemode/services/tool_broker.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Tool Broker.

Holds every live tool provider connection and serves tool calls on behalf
of sandboxed workers. Connections never leave this process; workers only
see the JSON result of each call.

The connection map is mutated under a lock (``connect``, ``register``,
``disconnect``, ``close``) and read without one by ``invoke``.

Examples:
    >>> import asyncio
    >>> from codemode.providers.base import InProcessToolConnection, text_result
    >>> class Echo(InProcessToolConnection):
    ...     TOOLS = [{"name": "echo", "inputSchema": {"type": "object"}}]
    ...     async def _tool_echo(self, text):
    ...         return text_result(text)
    >>> async def demo():
    ...     broker = ToolBroker()
    ...     await broker.register("echo", Echo())
    ...     result = await broker.invoke("echo", "echo", {"text": "X"})
    ...     await broker.close()
    ...     return result["content"][0]["text"]
    >>> asyncio.run(demo())
    'X'
"""

# Standard
import asyncio
from typing import Any, Dict, List, Optional

# First-Party
from codemode.errors import ConnectionLostError, NotConnectedError, ToolConnectionError
from codemode.models import ProviderSpec
from codemode.providers.base import ToolConnection
from codemode.providers.stdio import StdioToolConnection
from codemode.services.logging_service import LoggingService

logger = LoggingService().get_logger(__name__)


class ToolBroker:
    """Registry of named tool connections with a single call entry point."""

    def __init__(self) -> None:
        self._connections: Dict[str, ToolConnection] = {}
        self._lock = asyncio.Lock()

    def providers(self) -> List[str]:
        """Return the names of the connected providers, in registration order.

        Returns:
            List[str]: Provider names.
        """
        return list(self._connections)

    def is_connected(self, provider_name: str) -> bool:
        """Return True if ``provider_name`` is registered and still open.

        Args:
            provider_name: Provider to check.

        Returns:
            bool: Whether calls to the provider can be served.
        """
        connection = self._connections.get(provider_name)
        return connection is not None and not connection.closed

    async def connect(self, provider_name: str, spec: ProviderSpec) -> ToolConnection:
        """Spawn an external stdio MCP server and register it.

        Args:
            provider_name: Name user code will use for the provider.
            spec: How to spawn the server.

        Returns:
            ToolConnection: The open connection.

        Raises:
            ToolConnectionError: If the server cannot be spawned or initialised.
        """
        connection = StdioToolConnection(provider_name, spec)
        try:
            await connection.open()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"Failed to connect tool provider {provider_name}: {exc}")
            raise ToolConnectionError(f"failed to connect tool provider {provider_name}: {exc}") from exc
        await self.register(provider_name, connection)
        return connection

    async def register(self, provider_name: str, connection: ToolConnection) -> None:
        """Register an already open connection, replacing any previous one.

        Args:
            provider_name: Name user code will use for the provider.
            connection: Open connection.
        """
        async with self._lock:
            previous = self._connections.get(provider_name)
            self._connections[provider_name] = connection
        if previous is not None and previous is not connection:
            logger.info(f"Replacing tool provider {provider_name}")
            await self._close_quietly(provider_name, previous)
        logger.debug(f"Registered tool provider {provider_name}")

    async def disconnect(self, provider_name: str) -> bool:
        """Close and forget one provider.

        Args:
            provider_name: Provider to drop.

        Returns:
            bool: True if the provider was registered.
        """
        async with self._lock:
            connection = self._connections.pop(provider_name, None)
        if connection is None:
            return False
        await self._close_quietly(provider_name, connection)
        return True

    async def close(self) -> None:
        """Close every connection, most recently registered first."""
        async with self._lock:
            connections, self._connections = self._connections, {}
        for provider_name, connection in reversed(list(connections.items())):
            await self._close_quietly(provider_name, connection)

    async def _close_quietly(self, provider_name: str, connection: ToolConnection) -> None:
        try:
            await connection.close()
        except Exception as exc:
            logger.warning(f"Error closing tool provider {provider_name}: {exc}")

    async def _forget_lost(self, provider_name: str, connection: ToolConnection) -> ConnectionLostError:
        async with self._lock:
            if self._connections.get(provider_name) is connection:
                del self._connections[provider_name]
        logger.warning(f"Tool provider {provider_name} connection lost")
        await self._close_quietly(provider_name, connection)
        return ConnectionLostError(provider_name)

    def _lookup(self, provider_name: str) -> ToolConnection:
        connection = self._connections.get(provider_name)
        if connection is None:
            raise NotConnectedError(provider_name)
        return connection

    async def invoke(self, provider_name: str, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call a tool on a connected provider.

        Tool-level failures reported by the provider (``isError: true``) are
        returned as data, not raised.

        Args:
            provider_name: Provider to call.
            tool_name: Tool to call.
            arguments: Tool arguments.

        Returns:
            Dict[str, Any]: The provider's ``CallToolResult`` payload.

        Raises:
            NotConnectedError: If no provider is registered under ``provider_name``.
            ConnectionLostError: If the provider's connection has closed.
        """
        connection = self._lookup(provider_name)
        if connection.closed:
            raise await self._forget_lost(provider_name, connection)

        logger.debug(f"[tool-call] {provider_name}.{tool_name} {arguments or {}}")
        try:
            result = await connection.call_tool(tool_name, arguments or {})
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if connection.closed:
                raise await self._forget_lost(provider_name, connection) from exc
            logger.debug(f"[tool-call] {provider_name}.{tool_name} raised: {exc}")
            raise
        logger.debug(f"[tool-call] {provider_name}.{tool_name} -> isError={bool(result.get('isError'))}")
        return result

    async def list_tools(self, provider_name: str) -> List[Dict[str, Any]]:
        """Return the tool descriptors of one provider.

        Args:
            provider_name: Provider to query.

        Returns:
            List[Dict[str, Any]]: Descriptors with ``name``, ``description`` and ``inputSchema``.

        Raises:
            NotConnectedError: If the provider is not registered.
            ConnectionLostError: If the provider's connection has closed.
        """
        connection = self._lookup(provider_name)
        if connection.closed:
            raise await self._forget_lost(provider_name, connection)
        try:
            return await connection.list_tools()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if connection.closed:
                raise await self._forget_lost(provider_name, connection) from exc
            raise

    async def render_tool_tree(self) -> str:
        """Render the providers and their tools as a directory-style tree.

        Returns:
            str: Tree text mirroring the generated ``servers`` package.
        """
        names = self.providers()
        if not names:
            return "servers/\n(no tool providers connected)"

        lines = ["servers/"]
        for index, provider_name in enumerate(names):
            last_provider = index == len(names) - 1
            branch = "└── " if last_provider else "├── "
            indent = "    " if last_provider else "│   "
            try:
                tools = await self.list_tools(provider_name)
            except Exception as exc:
                lines.append(f"{branch}{provider_name}/ (failed to list tools: {exc})")
                continue
            lines.append(f"{branch}{provider_name}/")
            for tool_index, tool in enumerate(tools):
                tool_branch = "└── " if tool_index == len(tools) - 1 else "├── "
                lines.append(f"{indent}{tool_branch}{tool.get('name', '?')}")
        return "\n".join(lines)
