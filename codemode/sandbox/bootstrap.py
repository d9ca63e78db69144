# -*- coding: utf-8 -*-
"""Location: ./codemode/sandbox/bootstrap.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Worker bootstrap.

A copy of this file lives in every workspace as ``runner.py``. The worker is
started as ``python runner.py ./exec-<id>.py``: the specifier is resolved
against this file's directory (not the process working directory), that
directory is put first on ``sys.path`` so ``servers.<provider>`` stubs
import, and the target is compiled with top-level ``await`` allowed.

Exit status is 0 on success and 1 with a traceback on stderr otherwise.
Only the standard library may be used here.
"""

# Standard
import ast
import asyncio
import inspect
from pathlib import Path
import sys
import traceback


def resolve_entry(specifier: str) -> Path:
    """Resolve ``specifier`` relative to this script's directory."""
    return (Path(__file__).resolve().parent / specifier).resolve()


def run_entry(entry: Path) -> None:
    """Load and execute ``entry`` as ``__main__``."""
    source = entry.read_text(encoding="utf-8")
    code = compile(source, str(entry), "exec", flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT, dont_inherit=True)
    namespace = {"__name__": "__main__", "__file__": str(entry), "__builtins__": __builtins__}
    result = eval(code, namespace)  # pylint: disable=eval-used
    if inspect.iscoroutine(result):
        asyncio.run(result)


def main(argv=None) -> int:
    """Run the entry named on the command line and return the exit status."""
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("usage: runner.py <relative-specifier>", file=sys.stderr)
        return 2
    entry = resolve_entry(args[0])
    sys.path.insert(0, str(Path(__file__).resolve().parent))
    try:
        run_entry(entry)
    except SystemExit:
        raise
    except BaseException:  # noqa: BLE001 - user code may raise anything
        traceback.print_exc()
        sys.stderr.flush()
        return 1
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
