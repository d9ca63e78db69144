# -*- coding: utf-8 -*-
"""Location: ./codemode/providers/fetch.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Built-in fetch provider.

Fetches a URL with httpx (which honours ``HTTP_PROXY``/``HTTPS_PROXY`` when an
outer sandbox routes traffic through a proxy) and returns the body as text.
HTML is reduced to plain text unless ``raw`` is requested.
"""

# Standard
import re
from typing import Any, Dict, List, Optional

# Third-Party
import httpx

# First-Party
from codemode.providers.base import InProcessToolConnection, text_result
from codemode.services.logging_service import LoggingService

logger = LoggingService().get_logger(__name__)

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_RUN_RE = re.compile(r"\n\s*\n\s*\n")


def simplify_html(html: str) -> str:
    """Strip scripts, styles and tags from HTML.

    Args:
        html: Raw HTML.

    Returns:
        str: Plain text with runs of blank lines collapsed.

    Examples:
        >>> simplify_html("<html><script>x()</script><p>Hello</p>\\n\\n\\n<b>world</b></html>")
        'Hello\\n\\nworld'
    """
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


class FetchTools(InProcessToolConnection):
    """HTTP GET as a tool."""

    TOOLS: List[Dict[str, Any]] = [
        {
            "name": "fetch",
            "description": "Fetch URL and extract contents as text",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "URL to fetch"},
                    "max_length": {"type": "integer", "description": "Maximum characters to return"},
                    "start_index": {"type": "integer", "description": "Starting character index"},
                    "raw": {"type": "boolean", "description": "Return raw HTML without simplification"},
                },
                "required": ["url"],
            },
        }
    ]

    def __init__(self, timeout_seconds: float = 8.0, default_max_length: int = 50000, client: Optional[httpx.AsyncClient] = None) -> None:
        """Create the provider.

        Args:
            timeout_seconds: Per-request timeout.
            default_max_length: Character cap when the caller gives none.
            client: Optional preconfigured client (tests inject a mock transport).
        """
        super().__init__()
        self._timeout_seconds = timeout_seconds
        self._default_max_length = default_max_length
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)

    async def _tool_fetch(self, url: str, max_length: Optional[int] = None, start_index: Optional[int] = None, raw: bool = False) -> Dict[str, Any]:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException:
            return text_result(f"Fetch failed: Request timeout ({self._timeout_seconds:g}s)", is_error=True)
        except httpx.HTTPError as exc:
            logger.debug(f"[builtin-fetch] error: {exc}")
            return text_result(f"Fetch failed: {exc}", is_error=True)

        text = response.text
        if start_index:
            text = text[start_index:]
        text = text[: max_length or self._default_max_length]
        if not raw and "text/html" in response.headers.get("content-type", ""):
            text = simplify_html(text)
        return text_result(text)

    async def close(self) -> None:
        await self._client.aclose()
        await super().close()
