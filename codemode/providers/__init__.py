# -*- coding: utf-8 -*-
"""Tool provider connections held by the broker."""

# First-Party
from codemode.providers.base import InProcessToolConnection, text_result, ToolConnection

__all__ = ["InProcessToolConnection", "text_result", "ToolConnection"]
