"""Decode inbound JSON-RPC envelopes and encode outbound messages."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from appdna_mcp.models import JsonRpcRequest, JsonRpcResponse

from .errors import InvalidRequestError, ParseError, ProtocolError

__all__ = ["decode", "encode", "error_response", "recover_id"]

_ID_PATTERN = re.compile(r'"id"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)')


def decode(raw: bytes | str) -> JsonRpcRequest:
    """Parse one JSON-RPC request.

    Raises :class:`ParseError` for undecodable text and :class:`InvalidRequestError` for
    JSON that is not a request envelope. Both carry the best recoverable ``id``.
    """

    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(
                data={"error": f"invalid UTF-8: {exc.reason}"},
                request_id=recover_id(bytes(raw).decode("utf-8", errors="replace")),
            ) from exc
    else:
        text = raw

    try:
        message = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(data={"error": str(exc)}, request_id=recover_id(text)) from exc

    if isinstance(message, list):
        raise InvalidRequestError(
            "Invalid Request: batch requests are not supported", request_id=None
        )
    if not isinstance(message, Mapping):
        raise InvalidRequestError(
            "Invalid Request: expected a JSON object", request_id=None
        )

    try:
        return JsonRpcRequest.model_validate(message)
    except ValidationError as exc:
        problems = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise InvalidRequestError(
            f"Invalid Request: {_summarise(problems)}",
            data={"errors": problems},
            request_id=_valid_id(message.get("id")),
        ) from exc


def encode(message: BaseModel | Mapping[str, Any]) -> bytes:
    """Serialise a message to a single line of UTF-8 JSON (no trailing newline)."""

    if isinstance(message, BaseModel):
        payload = message.to_dict() if hasattr(message, "to_dict") else message.model_dump()
    else:
        payload = dict(message)
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def error_response(exc: ProtocolError, request_id: Any | None = None) -> JsonRpcResponse:
    target_id = request_id if request_id is not None else exc.request_id
    return JsonRpcResponse.failure(
        _valid_id(target_id),
        code=int(exc.code),
        message=exc.message,
        data=exc.data,
    )


def recover_id(text: str) -> str | int | float | None:
    """Best-effort extraction of ``"id"`` from text that failed to parse."""

    match = _ID_PATTERN.search(text)
    if match is None:
        return None
    try:
        value = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    return _valid_id(value)


def _valid_id(value: Any) -> str | int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    return None


def _summarise(problems: list[dict[str, str]]) -> str:
    if not problems:
        return "malformed envelope"
    first = problems[0]
    field = first["field"] or "envelope"
    return f"{field}: {first['message']}"
