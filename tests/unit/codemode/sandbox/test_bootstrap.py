# -*- coding: utf-8 -*-
"""Unit tests for the worker bootstrap script."""

# Standard
from pathlib import Path
import sys

# Third-Party
import pytest

# First-Party
from codemode.sandbox import bootstrap


@pytest.fixture(autouse=True)
def isolated_sys_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "path", list(sys.path))


def test_resolve_entry_is_relative_to_script_directory(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    resolved = bootstrap.resolve_entry("./exec-1-abc.py")

    assert resolved == Path(bootstrap.__file__).resolve().parent / "exec-1-abc.py"


def test_top_level_await_runs(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    entry = tmp_path / "entry.py"
    entry.write_text("import asyncio\nawait asyncio.sleep(0)\nprint('awaited', __name__)\n", encoding="utf-8")

    assert bootstrap.main([str(entry)]) == 0
    assert capsys.readouterr().out == "awaited __main__\n"


def test_plain_code_runs_without_event_loop(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    entry = tmp_path / "entry.py"
    entry.write_text("print(sum(range(4)))\n", encoding="utf-8")

    assert bootstrap.main([str(entry)]) == 0
    assert capsys.readouterr().out == "6\n"


def test_exception_prints_traceback_and_returns_one(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    entry = tmp_path / "entry.py"
    entry.write_text("raise RuntimeError('boom')\n", encoding="utf-8")

    assert bootstrap.main([str(entry)]) == 1
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "RuntimeError: boom" in err


def test_syntax_error_returns_one(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    entry = tmp_path / "entry.py"
    entry.write_text("def broken(:\n", encoding="utf-8")

    assert bootstrap.main([str(entry)]) == 1
    assert "SyntaxError" in capsys.readouterr().err


def test_system_exit_keeps_its_code(tmp_path: Path) -> None:
    entry = tmp_path / "entry.py"
    entry.write_text("import sys\nsys.exit(7)\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        bootstrap.main([str(entry)])
    assert excinfo.value.code == 7


def test_usage_error(capsys: pytest.CaptureFixture) -> None:
    assert bootstrap.main([]) == 2
    assert "usage" in capsys.readouterr().err
