# -*- coding: utf-8 -*-
"""Unit tests for the worker runner (spawns real worker processes)."""

# Standard
import os
from pathlib import Path
import signal
import textwrap
import time

# Third-Party
import pytest
import pytest_asyncio

# First-Party
from codemode.services.tool_broker import ToolBroker
from codemode.services.worker_runner import NO_OUTPUT_PLACEHOLDER, PROJECT_ROOT, timeout_message, WorkerRunner
from codemode.services.workspace_service import WorkspacePreparer


@pytest_asyncio.fixture
async def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    await WorkspacePreparer(tmp_path / "no-stubs").prepare(root)
    return root


def _entry(workspace: Path, source: str, name: str = "exec-test.py") -> str:
    (workspace / name).write_text(textwrap.dedent(source), encoding="utf-8")
    return f"./{name}"


@pytest.mark.asyncio
async def test_stdout_is_the_output(broker: ToolBroker, workspace: Path) -> None:
    runner = WorkerRunner(broker, workspace)

    result = await runner.run(_entry(workspace, "print('hi')\n"), 10000)

    assert result.success is True
    assert result.output == "hi\n"
    assert result.error is None


@pytest.mark.asyncio
async def test_empty_stdout_uses_placeholder(broker: ToolBroker, workspace: Path) -> None:
    result = await WorkerRunner(broker, workspace).run(_entry(workspace, "x = 1\n"), 10000)

    assert result.success is True
    assert result.output == NO_OUTPUT_PLACEHOLDER


@pytest.mark.asyncio
async def test_nonzero_exit_without_stderr(broker: ToolBroker, workspace: Path) -> None:
    result = await WorkerRunner(broker, workspace).run(_entry(workspace, "import os\nos._exit(3)\n"), 10000)

    assert result.success is False
    assert result.error == "Exit code: 3"


@pytest.mark.asyncio
async def test_stderr_becomes_the_error(broker: ToolBroker, workspace: Path) -> None:
    result = await WorkerRunner(broker, workspace).run(_entry(workspace, "raise ValueError('bad value')\n"), 10000)

    assert result.success is False
    assert "ValueError: bad value" in result.error


@pytest.mark.asyncio
async def test_spawn_failure_is_a_result(broker: ToolBroker, workspace: Path) -> None:
    runner = WorkerRunner(broker, workspace, python=str(workspace / "no-such-python"))

    result = await runner.run(_entry(workspace, "print('never')\n"), 10000)

    assert result.success is False
    assert "no-such-python" in result.error


@pytest.mark.asyncio
async def test_timeout_kills_worker(broker: ToolBroker, workspace: Path) -> None:
    started = time.monotonic()

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, "while True:\n    pass\n"), 500)

    assert result.success is False
    assert result.error == timeout_message(500) == "Execution timeout (0.5s)"
    assert time.monotonic() - started < 5


@pytest.mark.asyncio
async def test_worker_environment(broker: ToolBroker, workspace: Path) -> None:
    source = """
    import os
    print(os.environ["CODEMODE_IPC_FD"].isdigit())
    print(os.environ["PYTHONPATH"].split(os.pathsep)[0])
    print(os.getcwd())
    print(os.environ.get("EXTRA"))
    """
    runner = WorkerRunner(broker, workspace, env={"PATH": "/usr/bin:/bin", "EXTRA": "kept"})

    result = await runner.run(_entry(workspace, source), 10000)

    assert result.output.splitlines() == ["True", str(PROJECT_ROOT), str(workspace.resolve()), "kept"]


@pytest.mark.asyncio
async def test_malformed_frames_are_ignored(broker: ToolBroker, workspace: Path) -> None:
    source = """
    import os
    from codemode.sandbox.bridge import call_tool

    fd = int(os.environ["CODEMODE_IPC_FD"])
    os.write(fd, b'garbage\\n{"type": "callTool"}\\n[1]\\n')
    print(await call_tool("echo", "echo", {"text": "still works"}))
    """

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 10000)

    assert result.success is True, result.error
    assert result.output == "still works\n"


@pytest.mark.asyncio
async def test_broker_errors_are_sent_back_as_error_frames(broker: ToolBroker, workspace: Path) -> None:
    source = """
    from codemode.errors import ToolError
    from codemode.sandbox.bridge import call_tool

    try:
        await call_tool("ghost", "anything", {})
    except ToolError as exc:
        print(exc)
    """

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 10000)

    assert result.output == "tool provider not connected: ghost\n"


@pytest.mark.asyncio
async def test_tool_calls_run_concurrently(broker: ToolBroker, workspace: Path) -> None:
    source = """
    import asyncio, time
    from codemode.sandbox.bridge import call_tool

    started = time.monotonic()
    values = await asyncio.gather(*(call_tool("echo", "slow", {"text": str(i), "delay": 0.5}) for i in range(4)))
    print(values, time.monotonic() - started < 1.8)
    """

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 10000)

    assert result.output == "[0, 1, 2, 3] True\n"


@pytest.mark.asyncio
async def test_worker_killed_mid_call_does_not_break_runner(broker: ToolBroker, workspace: Path) -> None:
    source = """
    from codemode.sandbox.bridge import call_tool

    await call_tool("echo", "slow", {"text": "late", "delay": 5})
    """

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 1000)

    assert result.error == "Execution timeout (1s)"


@pytest.mark.asyncio
async def test_host_secrets_do_not_reach_the_worker(broker: ToolBroker, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live-123")
    monkeypatch.setenv("TOOL_PROVIDERS", '{"gh": {"command": "gh-mcp", "env": {"GITHUB_TOKEN": "s3cret"}}}')
    monkeypatch.setenv("LC_ALL", "C.UTF-8")
    source = """
    import os
    print(os.environ.get("OPENAI_API_KEY"), os.environ.get("TOOL_PROVIDERS"), os.environ.get("LC_ALL"))
    """

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 10000)

    assert result.output == "None None C.UTF-8\n"


@pytest.mark.asyncio
async def test_lingering_grandchild_does_not_turn_exit_into_timeout(broker: ToolBroker, workspace: Path) -> None:
    source = """
    import subprocess, sys
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    print(child.pid, flush=True)
    print("parent done")
    """
    started = time.monotonic()

    result = await WorkerRunner(broker, workspace).run(_entry(workspace, source), 10000)

    elapsed = time.monotonic() - started
    grandchild_pid, message = result.output.splitlines()
    os.kill(int(grandchild_pid), signal.SIGKILL)
    assert result.success is True
    assert message == "parent done"
    assert elapsed < 5
