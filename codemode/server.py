# -*- coding: utf-8 -*-
"""Location: ./codemode/server.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Code Mode MCP Server.

Exposes the sandbox to an MCP client over stdio. The client writes Python
that imports generated wrappers from ``servers.<provider>`` and submits it
through ``execute_code``; tool calls made by that code are served by the
providers connected here.

Tools:
- ``execute_code(code)``: run Python in a fresh worker and return its output
- ``list_available_tools()``: show the ``servers`` tree available to code
"""

# Standard
import asyncio
from typing import Any, Dict, List, Optional

# Third-Party
from mcp.server import Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

# First-Party
from codemode import __version__
from codemode.config import settings
from codemode.errors import ToolConnectionError
from codemode.providers.fetch import FetchTools
from codemode.providers.filesystem import FilesystemTools
from codemode.services.execution_session import ExecutionSession
from codemode.services.logging_service import LoggingService
from codemode.services.stub_generator import StubTreeGenerator
from codemode.services.tool_broker import ToolBroker

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

SERVER_NAME = "code-mode-server"

EXECUTE_CODE_DESCRIPTION = (
    "Run Python code in an isolated sandbox process. The code can call the connected "
    "MCP tool providers through generated async wrappers and top-level await is allowed.\n\n"
    "Usage:\n"
    "1. Write code that imports tools from servers.<provider>\n"
    "2. The code runs in a fresh worker process\n"
    "3. Whatever it prints is returned\n\n"
    "Example:\n"
    "from servers.filesystem import read_file\n"
    'print(await read_file(path="pyproject.toml"))'
)

TOOLS: List[Tool] = [
    Tool(
        name="execute_code",
        description=EXECUTE_CODE_DESCRIPTION,
        inputSchema={
            "type": "object",
            "properties": {"code": {"type": "string", "description": "Python source; may import tools from servers.*"}},
            "required": ["code"],
        },
    ),
    Tool(
        name="list_available_tools",
        description="List the MCP tools available inside the sandbox as a file tree",
        inputSchema={"type": "object", "properties": {}},
    ),
]


class ExecutionFailedError(Exception):
    """Surfaces a failed run to the client as an ``isError`` tool result."""


async def execute_code(session: ExecutionSession, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
    """Handle the ``execute_code`` tool.

    Args:
        session: Session that runs the code.
        arguments: Tool arguments; ``code`` is required.

    Returns:
        List[TextContent]: The captured output.

    Raises:
        ValueError: If ``code`` is missing.
        ExecutionFailedError: If the run failed; the SDK reports it as an error result.
    """
    code = (arguments or {}).get("code")
    if not isinstance(code, str):
        raise ValueError("execute_code requires a string 'code' argument")
    logger.debug(f"Executing code:\n{code}")
    result = await session.execute_code(code)
    logger.debug(f"Execution {'succeeded' if result.success else 'failed'}")
    if not result.success:
        raise ExecutionFailedError(f"Execution error:\n{result.error}")
    return [TextContent(type="text", text=result.output or "")]


async def list_available_tools(broker: ToolBroker) -> List[TextContent]:
    """Handle the ``list_available_tools`` tool.

    Args:
        broker: Broker whose providers are listed.

    Returns:
        List[TextContent]: The tool tree.
    """
    tree = await broker.render_tool_tree()
    return [TextContent(type="text", text=f"Available tools:\n{tree}")]


def create_server(session: ExecutionSession, broker: ToolBroker) -> Server:
    """Build the MCP server around a session and broker.

    Args:
        session: Runs ``execute_code`` submissions.
        broker: Lists the available tools.

    Returns:
        Server: Low-level MCP server with both tools registered.
    """
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def _list_tools() -> List[Tool]:
        return TOOLS

    @server.call_tool()
    async def _call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        if name == "execute_code":
            return await execute_code(session, arguments)
        if name == "list_available_tools":
            return await list_available_tools(broker)
        raise ValueError(f"Unknown tool: {name}")

    return server


async def connect_providers(broker: ToolBroker) -> None:
    """Connect configured external providers and register the builtin ones.

    A provider that fails to connect is logged and skipped.

    Args:
        broker: Broker to populate.
    """
    for name, spec in settings.tool_providers.items():
        try:
            await broker.connect(name, spec)
        except ToolConnectionError as exc:
            logger.warning(f"Skipping tool provider {name}: {exc}")

    if settings.builtin_tools_enabled:
        if "filesystem" not in broker.providers():
            await broker.register("filesystem", FilesystemTools(settings.builtin_allowed_directories or None))
        if "fetch" not in broker.providers():
            await broker.register("fetch", FetchTools(timeout_seconds=settings.fetch_timeout_seconds, default_max_length=settings.fetch_max_length))


async def serve() -> None:
    """Connect providers, generate stubs and serve MCP over stdio until the client leaves."""
    await logging_service.initialize()
    broker = ToolBroker()
    session: Optional[ExecutionSession] = None
    try:
        await connect_providers(broker)
        await StubTreeGenerator().generate(broker, settings.sandbox_stub_root)
        session = ExecutionSession(broker)
        await session.initialize()

        server = create_server(session, broker)
        logger.info(f"Starting {SERVER_NAME} {__version__} with providers: {', '.join(broker.providers()) or 'none'}")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server.get_capabilities(),
                ),
            )
    finally:
        if session is not None:
            await session.cleanup()
        await broker.close()
        await logging_service.shutdown()


def main() -> None:
    """Console entry point."""
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
