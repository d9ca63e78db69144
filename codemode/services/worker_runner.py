# -*- coding: utf-8 -*-
"""Location: ./codemode/services/worker_runner.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Worker Runner.

Runs one submission in a fresh interpreter process::

    <python> runner.py ./exec-<id>.py      (cwd = workspace)

Besides stdout/stderr the worker inherits one end of a socket pair; its
descriptor number is passed in ``CODEMODE_IPC_FD``. Tool calls arrive on
that channel as ``callTool`` frames, are served by the broker in this
process, and are answered with ``result`` or ``error`` frames.

Exactly one of three things settles a run: the process exits, the timeout
fires (the process is killed), or the process cannot be spawned.
"""

# Standard
import asyncio
import contextlib
import os
from pathlib import Path
import socket
import sys
from typing import Callable, Dict, List, Mapping, Optional, Set, Union

# First-Party
import codemode
from codemode.models import ExecutionResult
from codemode.sandbox import IPC_FD_ENV
from codemode.sandbox.protocol import CallToolRequest, decode_request, encode_message, ErrorResponse, iter_frames, MAX_FRAME_BYTES, ResultResponse
from codemode.services.logging_service import LoggingService
from codemode.services.tool_broker import ToolBroker
from codemode.services.workspace_service import RUNNER_FILENAME

logger = LoggingService().get_logger(__name__)

DEFAULT_TIMEOUT_MS = 10000
NO_OUTPUT_PLACEHOLDER = "Code executed successfully (no output)"

# Seconds to finish reading output after the worker exits
PIPE_DRAIN_GRACE_S = 0.5
_EXIT_POLL_S = 0.02

# Host variables passed through to workers, plus any ``LC_*``
WORKER_ENV_ALLOWLIST = frozenset({"PATH", "HOME", "LANG", "LANGUAGE", "TMPDIR", "TEMP", "TMP", "TZ", "PYTHONPATH", "SYSTEMROOT"})

# Directory containing the ``codemode`` package; generated stubs import from it
PROJECT_ROOT = Path(codemode.__file__).resolve().parent.parent


def timeout_message(timeout_ms: int) -> str:
    """Format the error reported for a run that exceeded its budget.

    Args:
        timeout_ms: Budget in milliseconds.

    Returns:
        str: Timeout error text.

    Examples:
        >>> timeout_message(10000)
        'Execution timeout (10s)'
        >>> timeout_message(1500)
        'Execution timeout (1.5s)'
    """
    return f"Execution timeout ({timeout_ms / 1000:g}s)"


def _limit_resources(memory_limit_mb: int) -> Callable[[], None]:
    """Return a ``preexec_fn`` capping the worker's address space."""

    def _apply() -> None:
        # Standard
        import resource  # pylint: disable=import-outside-toplevel

        limit = memory_limit_mb * 1024 * 1024
        if hasattr(resource, "RLIMIT_AS"):
            resource.setrlimit(resource.RLIMIT_AS, (limit, limit))
        elif hasattr(resource, "RLIMIT_DATA"):
            resource.setrlimit(resource.RLIMIT_DATA, (limit, limit))

    return _apply


async def _collect(stream: asyncio.StreamReader, chunks: List[bytes]) -> None:
    """Append everything read from *stream* to *chunks* until EOF."""
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        chunks.append(chunk)


class WorkerRunner:
    """Spawns and supervises worker processes for one workspace."""

    def __init__(
        self,
        broker: ToolBroker,
        workspace: Union[str, Path],
        python: Optional[str] = None,
        memory_limit_mb: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Create a runner.

        Args:
            broker: Serves tool calls made by workers.
            workspace: Directory holding ``runner.py`` and the entry files.
            python: Interpreter for workers; defaults to ``sys.executable``.
            memory_limit_mb: Optional address-space limit per worker (POSIX).
            env: Extra variables for workers, added on top of the allow-listed
                part of ``os.environ``.
        """
        self.broker = broker
        self.workspace = Path(workspace)
        self.python = python or sys.executable
        self.memory_limit_mb = memory_limit_mb
        self._base_env = env

    def _worker_env(self, fd: int) -> Dict[str, str]:
        env = {key: value for key, value in os.environ.items() if key in WORKER_ENV_ALLOWLIST or key.startswith("LC_")}
        if self._base_env is not None:
            env.update(self._base_env)
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(PROJECT_ROOT) + (os.pathsep + existing if existing else "")
        env["PYTHONIOENCODING"] = "utf-8"
        env["PYTHONDONTWRITEBYTECODE"] = "1"
        env[IPC_FD_ENV] = str(fd)
        return env

    async def run(self, entry_specifier: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ExecutionResult:
        """Run one entry file and wait for its outcome.

        Args:
            entry_specifier: Entry path relative to the workspace, e.g. ``./exec-1-ab.py``.
            timeout_ms: Wall-clock budget in milliseconds.

        Returns:
            ExecutionResult: Output on success, stderr text, exit code, timeout
            or spawn error otherwise. Never raises for worker failures.
        """
        host_sock, worker_sock = socket.socketpair()
        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    self.python,
                    str(self.workspace / RUNNER_FILENAME),
                    entry_specifier,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(self.workspace),
                    env=self._worker_env(worker_sock.fileno()),
                    pass_fds=(worker_sock.fileno(),),
                    preexec_fn=_limit_resources(self.memory_limit_mb) if self.memory_limit_mb and os.name != "nt" else None,
                )
            except (OSError, ValueError) as exc:
                logger.error(f"Failed to spawn worker for {entry_specifier}: {exc}")
                return ExecutionResult(success=False, error=str(exc))
            finally:
                # The child holds its own copy; ours must go so EOF reaches the host end
                worker_sock.close()

            logger.debug(f"Spawned worker pid={proc.pid} for {entry_specifier}")
            return await self._supervise(proc, host_sock, timeout_ms)
        finally:
            host_sock.close()

    async def _supervise(self, proc: asyncio.subprocess.Process, host_sock: socket.socket, timeout_ms: int) -> ExecutionResult:
        reader, writer = await asyncio.open_connection(sock=host_sock, limit=MAX_FRAME_BYTES)
        write_lock = asyncio.Lock()
        tool_tasks: Set["asyncio.Task[None]"] = set()

        async def _send_response(message: Union[ResultResponse, ErrorResponse]) -> None:
            async with write_lock:
                try:
                    writer.write(encode_message(message))
                    await writer.drain()
                except (ConnectionError, OSError) as exc:
                    logger.debug(f"Dropping reply {message.id}, worker channel closed: {exc}")

        async def _handle_tool_call(request: CallToolRequest) -> None:
            try:
                data = await self.broker.invoke(request.provider_name, request.tool_name, request.arguments)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                await _send_response(ErrorResponse(id=request.id, error=str(exc)))
                return
            await _send_response(ResultResponse(id=request.id, data=data))

        async def _pump_channel() -> None:
            with contextlib.suppress(ConnectionError, OSError):
                async for frame in iter_frames(reader):
                    request = decode_request(frame)
                    if request is None:
                        logger.debug("Ignoring malformed frame from worker")
                        continue
                    task = asyncio.create_task(_handle_tool_call(request))
                    tool_tasks.add(task)
                    task.add_done_callback(tool_tasks.discard)

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        stdout_task = asyncio.create_task(_collect(proc.stdout, stdout_chunks))
        stderr_task = asyncio.create_task(_collect(proc.stderr, stderr_chunks))
        pump_task = asyncio.create_task(_pump_channel())

        async def _wait_for_exit() -> int:
            # Process.wait() can also wait for the pipes, which a grandchild may hold open
            while proc.returncode is None:
                await asyncio.sleep(_EXIT_POLL_S)
            return proc.returncode

        try:
            try:
                exit_code = await asyncio.wait_for(_wait_for_exit(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(_wait_for_exit(), timeout=PIPE_DRAIN_GRACE_S)
                logger.warning(f"Worker pid={proc.pid} killed after {timeout_ms}ms")
                return ExecutionResult(success=False, error=timeout_message(timeout_ms))

            try:
                await asyncio.wait_for(asyncio.gather(stdout_task, stderr_task), timeout=PIPE_DRAIN_GRACE_S)
            except asyncio.TimeoutError:
                logger.warning(f"Worker pid={proc.pid} exited but its output pipes are still open; keeping what was read")

            stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
            stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
            logger.debug(f"Worker pid={proc.pid} exited with code {exit_code}")
            if exit_code == 0:
                return ExecutionResult(success=True, output=stdout or NO_OUTPUT_PLACEHOLDER)
            return ExecutionResult(success=False, error=stderr or f"Exit code: {exit_code}")
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
            pending = [stdout_task, stderr_task, pump_task, *tool_tasks]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()
