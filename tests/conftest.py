# -*- coding: utf-8 -*-
"""Location: ./tests/conftest.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Shared fixtures: an in-process fake provider, a broker holding it and a
builtin filesystem provider, and a ready execution session.
"""

# Standard
import asyncio
from pathlib import Path
from typing import Any, Dict

# Third-Party
import pytest
import pytest_asyncio

# First-Party
from codemode.providers.base import InProcessToolConnection, text_result
from codemode.providers.filesystem import FilesystemTools
from codemode.sandbox import bridge as bridge_mod
from codemode.services.execution_session import ExecutionSession
from codemode.services.stub_generator import StubTreeGenerator
from codemode.services.tool_broker import ToolBroker


class EchoTools(InProcessToolConnection):
    """Deterministic provider used across tests."""

    TOOLS = [
        {
            "name": "echo",
            "description": "Return the given text",
            "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
        },
        {
            "name": "add",
            "description": "Add two integers and return JSON",
            "inputSchema": {"type": "object", "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}}, "required": ["a", "b"]},
        },
        {
            "name": "fail",
            "description": "Always report a tool-level failure",
            "inputSchema": {"type": "object", "properties": {"reason": {"type": "string"}}},
        },
        {
            "name": "slow",
            "description": "Sleep, then echo",
            "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}, "delay": {"type": "number"}}, "required": ["text"]},
        },
    ]

    def __init__(self) -> None:
        super().__init__()
        self.calls: list = []

    async def _tool_echo(self, text: str) -> Dict[str, Any]:
        self.calls.append(("echo", text))
        return text_result(text)

    async def _tool_add(self, a: int, b: int) -> Dict[str, Any]:
        self.calls.append(("add", a, b))
        return text_result(f'{{"sum": {a + b}}}')

    async def _tool_fail(self, reason: str = "nope") -> Dict[str, Any]:
        self.calls.append(("fail", reason))
        return text_result(reason, is_error=True)

    async def _tool_slow(self, text: str, delay: float = 0.2) -> Dict[str, Any]:
        await asyncio.sleep(delay)
        return text_result(text)


@pytest.fixture
def echo_tools() -> EchoTools:
    return EchoTools()


@pytest.fixture
def files_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "files"
    directory.mkdir()
    (directory / "hello.txt").write_text("hello from disk", encoding="utf-8")
    return directory


@pytest_asyncio.fixture
async def broker(echo_tools: EchoTools, files_dir: Path):
    tool_broker = ToolBroker()
    await tool_broker.register("echo", echo_tools)
    await tool_broker.register("filesystem", FilesystemTools([str(files_dir)]))
    yield tool_broker
    await tool_broker.close()


@pytest_asyncio.fixture
async def session(broker: ToolBroker, tmp_path: Path):
    stub_root = tmp_path / "generated-api"
    await StubTreeGenerator().generate(broker, stub_root)
    execution_session = ExecutionSession(broker, workspace_base=tmp_path / "sandbox", stub_tree_dir=stub_root / "servers", timeout_ms=10000)
    await execution_session.initialize()
    yield execution_session
    await execution_session.cleanup()


@pytest.fixture(autouse=True)
def reset_bridge():
    """Drop the worker-side bridge singleton between tests."""
    bridge_mod._bridge = None
    yield
    bridge_mod._bridge = None
