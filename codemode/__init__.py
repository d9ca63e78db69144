# -*- coding: utf-8 -*-
"""Location: ./codemode/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

MCP code mode.

Runs dynamically generated Python code in an isolated worker process. Tool
calls made by that code are bridged back to a trusted broker that owns the
live MCP connections, so credentials and handles never enter the sandbox.
"""

__version__ = "0.1.0"
