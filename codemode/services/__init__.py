# -*- coding: utf-8 -*-
"""Location: ./codemode/services/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Host-side services: tool broker, workspace preparation, worker runner,
execution sessions and stub generation.
"""
