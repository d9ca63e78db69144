# -*- coding: utf-8 -*-
"""Location: ./codemode/config.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Code mode configuration.

Settings are read from the environment (and an optional ``.env`` file).
Complex values such as ``TOOL_PROVIDERS`` are JSON encoded::

    TOOL_PROVIDERS='{"git": {"command": "uvx", "args": ["mcp-server-git"]}}'
    SANDBOX_TIMEOUT_MS=15000
    SANDBOX_DEBUG=true

Only the host process reads configuration. Workers get nothing from here.

Examples:
    >>> from codemode.config import Settings
    >>> s = Settings(_env_file=None)
    >>> s.sandbox_timeout_ms
    10000
    >>> s.stub_tree_dir.parts[-1]
    'servers'
    >>> Settings(_env_file=None, sandbox_debug=True).effective_log_level.value
    'debug'
"""

# Standard
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

# Third-Party
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# First-Party
from codemode.models import LogLevel, ProviderSpec


class Settings(BaseSettings):
    """Code mode settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # Sandbox
    sandbox_timeout_ms: int = Field(default=10000, gt=0, description="Wall-clock budget for one worker run")
    sandbox_workspace_base: Path = Field(default=Path(".sandbox-temp"), description="Parent of per-session workspaces")
    sandbox_stub_root: Path = Field(default=Path("generated-api"), description="Where generated stubs are written")
    sandbox_memory_limit_mb: Optional[int] = Field(default=None, gt=0, description="Address-space limit per worker (POSIX)")
    sandbox_python: Optional[str] = Field(default=None, description="Interpreter for workers, defaults to sys.executable")
    sandbox_debug: bool = False

    # Tool providers
    builtin_tools_enabled: bool = True
    builtin_allowed_directories: List[str] = Field(default_factory=list)
    fetch_timeout_seconds: float = Field(default=8.0, gt=0)
    fetch_max_length: int = Field(default=50000, gt=0)
    tool_providers: Dict[str, ProviderSpec] = Field(default_factory=dict)

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_file: Optional[str] = None
    log_folder: Optional[str] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        """Accept upper-case level names from the environment.

        Args:
            value: Raw value.

        Returns:
            object: Lower-cased string, or the value untouched.
        """
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def stub_tree_dir(self) -> Path:
        """Canonical location of the generated stub tree.

        Returns:
            Path: ``<sandbox_stub_root>/servers``.
        """
        return self.sandbox_stub_root / "servers"

    @property
    def effective_log_level(self) -> LogLevel:
        """Log level after applying ``SANDBOX_DEBUG``.

        Returns:
            LogLevel: DEBUG when sandbox debugging is on, else ``log_level``.
        """
        return LogLevel.DEBUG if self.sandbox_debug else self.log_level


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings.

    Returns:
        Settings: The process-wide settings instance.
    """
    return Settings()


settings = get_settings()
