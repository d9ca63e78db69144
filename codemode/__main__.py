# -*- coding: utf-8 -*-
"""Location: ./codemode/__main__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Run the code mode MCP server over stdio: ``python -m codemode``.
"""

# First-Party
from codemode.server import main

if __name__ == "__main__":  # pragma: no cover
    main()
