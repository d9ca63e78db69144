# -*- coding: utf-8 -*-
"""Location: ./codemode/models.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Shared value types.

Examples:
    >>> from codemode.models import ExecutionResult, LogLevel
    >>> ExecutionResult(success=True, output="hi\\n").to_dict()
    {'success': True, 'output': 'hi\\n'}
    >>> LogLevel("debug") is LogLevel.DEBUG
    True
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

# Third-Party
from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """RFC 5424 severity levels."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class ExecutionResult:
    """Terminal record of one code submission."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dict, omitting unset fields.

        Returns:
            Dict[str, Any]: ``success`` plus whichever of ``output``/``error`` is set.
        """
        payload: Dict[str, Any] = {"success": self.success}
        if self.output is not None:
            payload["output"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ProviderSpec(BaseModel):
    """How to spawn an external stdio MCP server.

    Examples:
        >>> spec = ProviderSpec(command="npx", args=["-y", "@modelcontextprotocol/server-filesystem", "."])
        >>> spec.args[0]
        '-y'
        >>> spec.env is None
        True
    """

    command: str
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None
