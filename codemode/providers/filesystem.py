# -*- coding: utf-8 -*-
"""Location: ./codemode/providers/filesystem.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Built-in filesystem provider.

Runs inside the host process so the code mode server does not need a second
stdio MCP server for file access (its own stdio is taken by its client).
Every path must resolve inside one of the allowed directories.

Failures are returned as ``isError`` results, for example::

    ENOENT: No such file or directory, missing.txt
"""

# Standard
import asyncio
from datetime import datetime, timezone
import errno
import json
import os
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Sequence

# First-Party
from codemode.providers.base import InProcessToolConnection, text_result
from codemode.services.logging_service import LoggingService

logger = LoggingService().get_logger(__name__)


def _is_path_within(child: Path, parent: Path) -> bool:
    """Return True if *child* is equal to or inside *parent* (symlink-safe)."""
    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


def _os_error_text(exc: OSError, path: str) -> str:
    """Render an OSError as ``<ERRNO>: <reason>, <path>``.

    Examples:
        >>> _os_error_text(FileNotFoundError(errno.ENOENT, "No such file or directory"), "missing.txt")
        'ENOENT: No such file or directory, missing.txt'
    """
    code = errno.errorcode.get(exc.errno, type(exc).__name__) if exc.errno is not None else type(exc).__name__
    return f"{code}: {exc.strerror or exc}, {path}"


def _path_schema(*names: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "string"} for name in names},
        "required": list(names),
    }


class PathDeniedError(PermissionError):
    """A path resolved outside the allowed directories."""


class FilesystemTools(InProcessToolConnection):
    """File access limited to a set of directories."""

    TOOLS: List[Dict[str, Any]] = [
        {"name": "read_file", "description": "Read complete contents of a file", "inputSchema": _path_schema("path")},
        {
            "name": "read_multiple_files",
            "description": "Read multiple files simultaneously",
            "inputSchema": {"type": "object", "properties": {"paths": {"type": "array", "items": {"type": "string"}}}, "required": ["paths"]},
        },
        {"name": "write_file", "description": "Create new file or overwrite existing", "inputSchema": _path_schema("path", "content")},
        {"name": "create_directory", "description": "Create new directory or ensure it exists", "inputSchema": _path_schema("path")},
        {"name": "list_directory", "description": "List directory contents", "inputSchema": _path_schema("path")},
        {"name": "move_file", "description": "Move or rename files and directories", "inputSchema": _path_schema("source", "destination")},
        {"name": "search_files", "description": "Search for files whose name matches a regular expression", "inputSchema": _path_schema("path", "pattern")},
        {"name": "get_file_info", "description": "Get metadata about file or directory", "inputSchema": _path_schema("path")},
        {"name": "list_allowed_directories", "description": "List directories available to access", "inputSchema": {"type": "object", "properties": {}}},
    ]

    def __init__(self, allowed_directories: Optional[Sequence[str]] = None) -> None:
        """Create the provider.

        Args:
            allowed_directories: Directories that may be accessed; defaults to the working directory.
                Relative paths resolve against the first one.
        """
        super().__init__()
        self.allowed_directories: List[Path] = [Path(d).expanduser().resolve() for d in (allowed_directories or [os.getcwd()])]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await super().call_tool(name, arguments)
        except PathDeniedError as exc:
            return text_result(str(exc), is_error=True)
        except OSError as exc:
            target = (arguments or {}).get("path") or (arguments or {}).get("source") or exc.filename or ""
            logger.debug(f"[builtin-filesystem] {name} error: {exc}")
            return text_result(_os_error_text(exc, str(target)), is_error=True)

    def _resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        resolved = path.resolve() if path.is_absolute() else (self.allowed_directories[0] / path).resolve()
        if not any(_is_path_within(resolved, allowed) for allowed in self.allowed_directories):
            raise PathDeniedError(f"Access denied - path outside allowed directories: {raw}")
        return resolved

    def _read_text(self, raw: str) -> str:
        target = self._resolve(raw)
        # FIFOs and devices would block the reading thread forever
        if target.exists() and not target.is_file():
            raise OSError(errno.EINVAL, "Not a regular file", raw)
        return target.read_text(encoding="utf-8")

    async def _tool_read_file(self, path: str) -> Dict[str, Any]:
        return text_result(await asyncio.to_thread(self._read_text, path))

    async def _tool_read_multiple_files(self, paths: List[str]) -> Dict[str, Any]:
        def _read_all() -> List[Dict[str, str]]:
            results: List[Dict[str, str]] = []
            for path in paths:
                try:
                    results.append({"path": path, "content": self._read_text(path)})
                except PathDeniedError as exc:
                    results.append({"path": path, "error": str(exc)})
                except OSError as exc:
                    results.append({"path": path, "error": _os_error_text(exc, path)})
            return results

        return text_result(json.dumps(await asyncio.to_thread(_read_all), indent=2))

    async def _tool_write_file(self, path: str, content: str) -> Dict[str, Any]:
        def _write() -> None:
            target = self._resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return text_result(f"Successfully wrote to {path}")

    async def _tool_create_directory(self, path: str) -> Dict[str, Any]:
        await asyncio.to_thread(lambda: self._resolve(path).mkdir(parents=True, exist_ok=True))
        return text_result(f"Successfully created directory {path}")

    async def _tool_list_directory(self, path: str) -> Dict[str, Any]:
        def _list() -> List[Dict[str, str]]:
            entries = sorted(self._resolve(path).iterdir(), key=lambda p: p.name)
            return [{"name": entry.name, "type": "directory" if entry.is_dir() else "file"} for entry in entries]

        return text_result(json.dumps(await asyncio.to_thread(_list), indent=2))

    async def _tool_move_file(self, source: str, destination: str) -> Dict[str, Any]:
        await asyncio.to_thread(lambda: self._resolve(source).rename(self._resolve(destination)))
        return text_result(f"Successfully moved {source} to {destination}")

    async def _tool_search_files(self, path: str, pattern: str) -> Dict[str, Any]:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            return text_result(f"Invalid pattern {pattern!r}: {exc}", is_error=True)

        def _walk() -> List[str]:
            found: List[str] = []
            for dirpath, _dirnames, filenames in os.walk(self._resolve(path)):
                found.extend(os.path.join(dirpath, name) for name in filenames if regex.search(name))
            return sorted(found)

        return text_result(json.dumps(await asyncio.to_thread(_walk), indent=2))

    async def _tool_get_file_info(self, path: str) -> Dict[str, Any]:
        def _iso(ts: float) -> str:
            return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

        def _info() -> Dict[str, Any]:
            target = self._resolve(path)
            stats = target.stat()
            return {
                "size": stats.st_size,
                "created": _iso(getattr(stats, "st_birthtime", stats.st_ctime)),
                "modified": _iso(stats.st_mtime),
                "accessed": _iso(stats.st_atime),
                "isDirectory": target.is_dir(),
                "isFile": target.is_file(),
                "permissions": oct(stats.st_mode & 0o777),
            }

        return text_result(json.dumps(await asyncio.to_thread(_info), indent=2))

    async def _tool_list_allowed_directories(self) -> Dict[str, Any]:
        return text_result(json.dumps([str(d) for d in self.allowed_directories], indent=2))
