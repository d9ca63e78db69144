# -*- coding: utf-8 -*-
"""Location: ./codemode/errors.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Error taxonomy shared by the broker and the worker-side bridge.

This module is imported inside worker processes, so it must stay free of
anything that touches configuration or live connections.

Examples:
    >>> str(NotConnectedError("filesystem"))
    'tool provider not connected: filesystem'
    >>> NotConnectedError("fetch").provider_name
    'fetch'
    >>> str(ConnectionLostError("fetch"))
    'tool provider connection lost: fetch'
    >>> issubclass(ChannelUnavailableError, CodeModeError)
    True
"""


class CodeModeError(Exception):
    """Base class for code mode errors."""


class ToolConnectionError(CodeModeError):
    """Raised when a tool provider cannot be connected."""


class NotConnectedError(CodeModeError):
    """Raised when a call names a provider the broker does not hold."""

    def __init__(self, provider_name: str) -> None:
        """Build the error for ``provider_name``.

        Args:
            provider_name: Name the caller asked for.
        """
        super().__init__(f"tool provider not connected: {provider_name}")
        self.provider_name = provider_name


class ConnectionLostError(CodeModeError):
    """Raised when a registered provider's connection has gone away."""

    def __init__(self, provider_name: str) -> None:
        """Build the error for ``provider_name``.

        Args:
            provider_name: Name of the provider whose connection closed.
        """
        super().__init__(f"tool provider connection lost: {provider_name}")
        self.provider_name = provider_name


class ToolError(CodeModeError):
    """Raised in the worker when a tool call comes back as a failure."""


class ChannelUnavailableError(CodeModeError):
    """Raised in the worker when the broker channel cannot be used."""
