# -*- coding: utf-8 -*-
"""Location: ./codemode/sandbox/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Worker-side code.

Everything in this package runs inside the isolated worker process (or is
copied into its workspace). It must never import host configuration,
logging or provider connections.

- ``bootstrap``: the runner script copied into each workspace
- ``protocol``: IPC envelopes shared with the host
- ``bridge``: ``call_tool`` used by generated stubs
"""

# Environment variable naming the worker's end of the broker channel
IPC_FD_ENV = "CODEMODE_IPC_FD"
