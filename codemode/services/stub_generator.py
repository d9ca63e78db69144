# -*- coding: utf-8 -*-
"""Location: ./codemode/services/stub_generator.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Stub Tree Generator.

Writes one typed async wrapper per tool so user code can do::

    from servers.filesystem import read_file
    text = await read_file(path="notes.txt")

Layout under the output root::

    servers/__init__.py
    servers/<provider>/__init__.py      re-exports every tool
    servers/<provider>/<tool>.py        async def <tool>(*, ...) -> Any

Each wrapper forwards to :func:`codemode.sandbox.bridge.call_tool`.
"""

# Standard
import json
import keyword
from pathlib import Path
import re
import shutil
from typing import Any, Dict, List, Tuple, Union

# First-Party
from codemode.services.logging_service import LoggingService
from codemode.services.tool_broker import ToolBroker

logger = LoggingService().get_logger(__name__)

_HEADER = "# Auto-generated by mcp-code-mode. Do not edit.\n"


def python_identifier(value: str) -> str:
    """Turn an arbitrary name into a usable Python identifier.

    Args:
        value: Provider, tool or property name.

    Returns:
        str: Sanitized identifier.

    Examples:
        >>> python_identifier("read-file")
        'read_file'
        >>> python_identifier("2fa")
        '_2fa'
        >>> python_identifier("class")
        'class_'
        >>> python_identifier("")
        'x'
    """
    normalized = re.sub(r"[^a-zA-Z0-9_]", "_", value)
    if not normalized:
        normalized = "x"
    if normalized[0].isdigit():
        normalized = f"_{normalized}"
    if keyword.iskeyword(normalized):
        normalized = f"{normalized}_"
    return normalized


def schema_to_python_type(schema: Dict[str, Any]) -> str:
    """Map a JSON schema fragment to a Python annotation.

    Args:
        schema: JSON schema fragment.

    Returns:
        str: Annotation source text.

    Examples:
        >>> schema_to_python_type({"type": "array", "items": {"type": "integer"}})
        'List[int]'
        >>> schema_to_python_type({"enum": ["a", "b"]})
        "Literal['a', 'b']"
        >>> schema_to_python_type({"type": ["string", "null"]})
        'Optional[str]'
        >>> schema_to_python_type({})
        'Any'
    """
    if schema.get("enum"):
        values = [repr(v) for v in schema["enum"]]
        return "Literal[" + ", ".join(values) + "]"
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        concrete = [t for t in schema_type if t != "null"]
        if len(concrete) != 1:
            return "Any"
        inner = schema_to_python_type({**schema, "type": concrete[0]})
        return f"Optional[{inner}]" if "null" in schema_type else inner
    if schema_type == "string":
        return "str"
    if schema_type == "integer":
        return "int"
    if schema_type == "number":
        return "float"
    if schema_type == "boolean":
        return "bool"
    if schema_type == "array":
        return f"List[{schema_to_python_type(schema.get('items') or {})}]"
    if schema_type == "object":
        return "Dict[str, Any]"
    return "Any"


def _docstring(text: str) -> str:
    cleaned = (text or "").strip().replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if cleaned.endswith('"'):
        cleaned = cleaned[:-1] + '\\"'
    return cleaned or "No description."


def render_tool_stub(provider_name: str, tool: Dict[str, Any]) -> Tuple[str, str]:
    """Render the wrapper module for one tool.

    Args:
        provider_name: Provider the tool belongs to.
        tool: Tool descriptor with ``name``, ``description`` and ``inputSchema``.

    Returns:
        Tuple[str, str]: Function name and module source.

    Examples:
        >>> name, source = render_tool_stub("fs", {"name": "read-file", "inputSchema": {"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]}})
        >>> name
        'read_file'
        >>> "async def read_file(*, path: str) -> Any:" in source
        True
        >>> 'return await _call_tool("fs", "read-file", _args)' in source
        True
    """
    tool_name = tool["name"]
    function_name = python_identifier(tool_name)
    schema = tool.get("inputSchema") or {}
    properties: Dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    required_params: List[str] = []
    optional_params: List[str] = []
    required_items: List[str] = []
    optional_items: List[str] = []
    used = {"_args", "_extra", "_call_tool"}
    needs_extra = False
    for prop_name, prop_schema in properties.items():
        param = python_identifier(prop_name)
        if not prop_name.isidentifier() or (param != prop_name and param in properties) or param in used:
            needs_extra = True
            continue
        used.add(param)
        annotation = schema_to_python_type(prop_schema or {})
        if prop_name in required:
            required_params.append(f"{param}: {annotation}")
            required_items.append(f"{prop_name!r}: {param}")
        else:
            optional_params.append(f"{param}: Optional[{annotation}] = None")
            optional_items.append(f"    if {param} is not None:\n        _args[{prop_name!r}] = {param}\n")

    params = required_params + optional_params
    if needs_extra or schema.get("additionalProperties") is True:
        params.append("**_extra: Any")
    signature = f"async def {function_name}(*, {', '.join(params)}) -> Any:" if params else f"async def {function_name}() -> Any:"

    lines = [
        _HEADER,
        f"# Provider: {provider_name}\n\n",
        "from __future__ import annotations\n\n",
        "from typing import Any, Dict, List, Literal, Optional  # noqa: F401\n\n",
        "from codemode.sandbox.bridge import call_tool as _call_tool\n\n\n",
        f"{signature}\n",
        f'    """{_docstring(tool.get("description", ""))}"""\n',
        f"    _args: Dict[str, Any] = {{{', '.join(required_items)}}}\n",
        *optional_items,
    ]
    if "**_extra: Any" in params:
        lines.append("    _args.update(_extra)\n")
    lines.append(f"    return await _call_tool({json.dumps(provider_name)}, {json.dumps(tool_name)}, _args)\n")
    return function_name, "".join(lines)


class StubTreeGenerator:
    """Writes the ``servers`` package for every provider the broker holds."""

    async def generate(self, broker: ToolBroker, output_root: Union[str, Path]) -> Dict[str, List[str]]:
        """Regenerate ``<output_root>/servers`` from the live tool catalog.

        Providers whose tools cannot be listed are logged and left out.

        Args:
            broker: Source of provider tool lists.
            output_root: Directory that will contain ``servers``.

        Returns:
            Dict[str, List[str]]: Generated function names per provider package.
        """
        servers_dir = Path(output_root) / "servers"
        # Workspaces link to this path, so it is emptied in place rather than replaced
        servers_dir.mkdir(parents=True, exist_ok=True)
        for child in servers_dir.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)

        generated: Dict[str, List[str]] = {}
        for provider_name in broker.providers():
            try:
                tools = await broker.list_tools(provider_name)
            except Exception as exc:
                logger.warning(f"Skipping stubs for {provider_name}: {exc}")
                continue
            package = python_identifier(provider_name)
            if package in generated:
                logger.warning(f"Skipping stubs for {provider_name}: package name {package} already used")
                continue
            generated[package] = self._write_provider(servers_dir / package, provider_name, tools)

        self._write_root_init(servers_dir, generated)
        logger.info(f"Generated stubs for {sum(len(v) for v in generated.values())} tools across {len(generated)} providers in {servers_dir}")
        return generated

    def _write_provider(self, package_dir: Path, provider_name: str, tools: List[Dict[str, Any]]) -> List[str]:
        package_dir.mkdir(parents=True, exist_ok=True)
        functions: List[str] = []
        for tool in tools:
            if not tool.get("name"):
                continue
            function_name, source = render_tool_stub(provider_name, tool)
            if function_name in functions:
                logger.warning(f"Skipping {provider_name}.{tool['name']}: {function_name} already generated")
                continue
            (package_dir / f"{function_name}.py").write_text(source, encoding="utf-8")
            functions.append(function_name)

        init_lines = [_HEADER, f'"""Tools of the {provider_name!r} provider."""\n\n']
        init_lines.extend(f"from .{name} import {name}\n" for name in functions)
        init_lines.append(f"\n__all__ = {functions!r}\n")
        (package_dir / "__init__.py").write_text("".join(init_lines), encoding="utf-8")
        return functions

    def _write_root_init(self, servers_dir: Path, generated: Dict[str, List[str]]) -> None:
        listing = "".join(f"    {package}: {', '.join(functions) or '(no tools)'}\n" for package, functions in generated.items())
        (servers_dir / "__init__.py").write_text(f'{_HEADER}"""Generated tool providers.\n\n{listing}"""\n', encoding="utf-8")
