# -*- coding: utf-8 -*-
"""Base interface for tool provider connections."""

# Standard
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


def text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    """Build a ``CallToolResult``-shaped dict with one text item.

    Args:
        text: Text content.
        is_error: Whether the tool failed.

    Returns:
        Dict[str, Any]: MCP tool result payload.

    Examples:
        >>> text_result("ok")
        {'content': [{'type': 'text', 'text': 'ok'}], 'isError': False}
    """
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


class ToolConnection(ABC):
    """Live handle to one tool provider.

    Connections stay on the host side. Results are plain dicts in the MCP
    ``CallToolResult`` shape so they can cross the worker channel as JSON.
    """

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Return True once the connection can no longer serve calls."""

    @abstractmethod
    async def list_tools(self) -> List[Dict[str, Any]]:
        """Return tool descriptors (``name``, ``description``, ``inputSchema``)."""

    @abstractmethod
    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a tool.

        Args:
            name: Tool name.
            arguments: Tool arguments.

        Returns:
            Dict[str, Any]: MCP tool result payload. Tool-level failures are
            reported with ``isError`` rather than raised.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""


class InProcessToolConnection(ToolConnection):
    """Base for providers implemented inside the host process.

    Subclasses declare ``TOOLS`` descriptors and implement one
    ``_tool_<name>`` coroutine per tool.
    """

    TOOLS: List[Dict[str, Any]] = []

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def list_tools(self) -> List[Dict[str, Any]]:
        return [dict(tool) for tool in self.TOOLS]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        handler = getattr(self, f"_tool_{name}", None) if any(tool["name"] == name for tool in self.TOOLS) else None
        if handler is None:
            return text_result(f"Unknown tool: {name}", is_error=True)
        try:
            return await handler(**(arguments or {}))
        except TypeError as exc:
            return text_result(f"Invalid arguments for {name}: {exc}", is_error=True)

    async def close(self) -> None:
        self._closed = True
