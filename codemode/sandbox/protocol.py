# -*- coding: utf-8 -*-
"""Location: ./codemode/sandbox/protocol.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

IPC envelopes exchanged between a worker and the host.

Frames are newline-delimited JSON objects on the worker's dedicated channel.
Field names stay camelCase on the wire::

    {"type": "callTool", "id": "...", "providerName": "...", "toolName": "...", "arguments": {...}}
    {"type": "result", "id": "...", "data": {...}}
    {"type": "error", "id": "...", "error": "..."}

Anything that does not decode into one of these shapes is dropped by the
receiving side.

Examples:
    >>> req = CallToolRequest(id="1", provider_name="filesystem", tool_name="read_file", arguments={"path": "a"})
    >>> encode_message(req)
    b'{"type":"callTool","id":"1","providerName":"filesystem","toolName":"read_file","arguments":{"path":"a"}}\\n'
    >>> decode_request(encode_message(req)).tool_name
    'read_file'
    >>> decode_request(b"not json") is None
    True
    >>> decode_request(b'{"type": "callTool", "providerName": "x"}') is None
    True
    >>> decode_response(b'{"type": "error", "id": "1", "error": "boom"}').error
    'boom'
"""

# Standard
import asyncio
from typing import Annotated, Any, AsyncIterator, Dict, Literal, Optional, Union

# Third-Party
import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator, TypeAdapter, ValidationError

# Upper bound for one frame; tool results can carry whole files
MAX_FRAME_BYTES = 16 * 1024 * 1024


class CallToolRequest(BaseModel):
    """Worker → host: invoke ``tool_name`` on ``provider_name``."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["callTool"] = "callTool"
    id: str = Field(min_length=1)
    provider_name: str = Field(alias="providerName")
    tool_name: str = Field(alias="toolName")
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _none_means_empty(cls, value: Any) -> Any:
        """Treat a null argument object as empty.

        Args:
            value: Raw value.

        Returns:
            Any: ``{}`` for None, otherwise the value untouched.
        """
        return {} if value is None else value


class ResultResponse(BaseModel):
    """Host → worker: the provider's tool result."""

    type: Literal["result"] = "result"
    id: str
    data: Any = None


class ErrorResponse(BaseModel):
    """Host → worker: the call could not be carried out."""

    type: Literal["error"] = "error"
    id: str
    error: str


IPCResponse = Annotated[Union[ResultResponse, ErrorResponse], Field(discriminator="type")]
IPCMessage = Union[CallToolRequest, ResultResponse, ErrorResponse]

_response_adapter: TypeAdapter = TypeAdapter(IPCResponse)


def encode_message(message: IPCMessage) -> bytes:
    """Serialize an envelope into one wire frame.

    Args:
        message: Envelope to send.

    Returns:
        bytes: JSON object followed by a newline.
    """
    return orjson.dumps(message.model_dump(by_alias=True, mode="json")) + b"\n"


def _load_object(frame: bytes) -> Optional[Dict[str, Any]]:
    """Decode a frame into a JSON object, or None."""
    try:
        payload = orjson.loads(frame)
    except orjson.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def decode_request(frame: bytes) -> Optional[CallToolRequest]:
    """Parse a worker frame.

    Args:
        frame: Raw frame, with or without the trailing newline.

    Returns:
        Optional[CallToolRequest]: The request, or None when the frame is malformed.
    """
    payload = _load_object(frame)
    if payload is None:
        return None
    try:
        return CallToolRequest.model_validate(payload)
    except ValidationError:
        return None


def decode_response(frame: bytes) -> Optional[Union[ResultResponse, ErrorResponse]]:
    """Parse a host frame.

    Args:
        frame: Raw frame, with or without the trailing newline.

    Returns:
        The response, or None when the frame is malformed.
    """
    payload = _load_object(frame)
    if payload is None:
        return None
    try:
        return _response_adapter.validate_python(payload)
    except ValidationError:
        return None


async def iter_frames(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield non-empty frames until EOF.

    Oversized frames are skipped rather than ending the stream.

    Args:
        reader: Channel reader opened with ``limit=MAX_FRAME_BYTES``.

    Yields:
        bytes: One stripped frame.
    """
    while True:
        try:
            line = await reader.readline()
        except ValueError:
            continue
        if not line:
            return
        line = line.strip()
        if line:
            yield line
