# -*- coding: utf-8 -*-
"""Location: ./codemode/services/execution_session.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Execution Session.

Public entry point of the sandbox. One session owns one workspace
directory, named ``<pid>-<ms>-<hex>`` under the workspace base, and runs
each submission as ``exec-<ms>-<hex>.py`` inside it. Entry files are
removed once their worker has exited; the workspace stays until
:meth:`ExecutionSession.cleanup`.

Examples:
    >>> import asyncio
    >>> from unittest.mock import MagicMock
    >>> session = ExecutionSession(MagicMock(), workspace_base="/tmp/cm-doctest")
    >>> session.workspace.parent.as_posix()
    '/tmp/cm-doctest'
    >>> asyncio.run(session.cleanup())
"""

# Standard
import asyncio
import contextlib
import os
from pathlib import Path
import secrets
import shutil
import time
from typing import Optional, Union
import uuid

# First-Party
from codemode.config import settings
from codemode.models import ExecutionResult
from codemode.services.logging_service import LoggingService
from codemode.services.tool_broker import ToolBroker
from codemode.services.worker_runner import WorkerRunner
from codemode.services.workspace_service import StubTreeOutcome, WorkspacePreparer

logger = LoggingService().get_logger(__name__)


class ExecutionSession:
    """Runs submitted code in isolated workers against a shared broker."""

    def __init__(
        self,
        broker: ToolBroker,
        workspace_base: Optional[Union[str, Path]] = None,
        stub_tree_dir: Optional[Union[str, Path]] = None,
        timeout_ms: Optional[int] = None,
        preparer: Optional[WorkspacePreparer] = None,
        runner: Optional[WorkerRunner] = None,
    ) -> None:
        """Create a session; the workspace is created by :meth:`initialize`.

        Args:
            broker: Serves tool calls made by user code.
            workspace_base: Parent of the workspace; defaults to ``settings.sandbox_workspace_base``.
            stub_tree_dir: Canonical stub tree; defaults to ``settings.stub_tree_dir``.
            timeout_ms: Per-run budget; defaults to ``settings.sandbox_timeout_ms``.
            preparer: Custom workspace preparer.
            runner: Custom worker runner.
        """
        base = Path(workspace_base if workspace_base is not None else settings.sandbox_workspace_base).resolve()
        self._workspace = base / f"{os.getpid()}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"
        self.broker = broker
        self.timeout_ms = timeout_ms or settings.sandbox_timeout_ms
        self.preparer = preparer or WorkspacePreparer(stub_tree_dir if stub_tree_dir is not None else settings.stub_tree_dir)
        self.runner = runner or WorkerRunner(broker, self._workspace, python=settings.sandbox_python, memory_limit_mb=settings.sandbox_memory_limit_mb)
        self.stub_tree: Optional[StubTreeOutcome] = None
        self._init_lock = asyncio.Lock()

    @property
    def workspace(self) -> Path:
        """Directory owned by this session."""
        return self._workspace

    async def initialize(self) -> StubTreeOutcome:
        """Create the workspace, its runner and stub tree view.

        Returns:
            StubTreeOutcome: How the stub tree was provided.
        """
        async with self._init_lock:
            self.stub_tree = await self.preparer.prepare(self._workspace)
            logger.info(f"Sandbox workspace ready at {self._workspace} (stub tree {self.stub_tree.value})")
            return self.stub_tree

    async def execute_code(self, code: str) -> ExecutionResult:
        """Run ``code`` in a fresh worker.

        Args:
            code: Python source; top-level ``await`` is allowed.

        Returns:
            ExecutionResult: Outcome of the run. Failures of any kind are
            reported here rather than raised.
        """
        entry: Optional[Path] = None
        try:
            if self.stub_tree is None or not self._workspace.is_dir():
                await self.initialize()
            entry = self._workspace / f"exec-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.py"
            await asyncio.to_thread(entry.write_text, code, encoding="utf-8")
            entry.stat()
            return await self.runner.run(f"./{entry.name}", self.timeout_ms)
        except Exception as exc:
            logger.error(f"Code execution failed before completion: {exc}")
            return ExecutionResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            if entry is not None:
                with contextlib.suppress(OSError):
                    entry.unlink(missing_ok=True)

    async def cleanup(self) -> None:
        """Remove the workspace. Safe to call more than once."""
        await asyncio.to_thread(shutil.rmtree, self._workspace, True)
        self.stub_tree = None
        logger.debug(f"Removed sandbox workspace {self._workspace}")

    async def __aenter__(self) -> "ExecutionSession":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.cleanup()
