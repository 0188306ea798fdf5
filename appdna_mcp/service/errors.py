from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

__all__ = [
    "DuplicateToolError",
    "InternalError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonRpcErrorCode",
    "MethodNotFoundError",
    "ParseError",
    "PortUnavailableError",
    "ProtocolError",
    "ToolError",
    "ToolInputError",
]


class JsonRpcErrorCode(IntEnum):
    """Reserved JSON-RPC 2.0 error codes used by the server."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    @property
    def default_message(self) -> str:
        return _SPECS[self].message

    @property
    def http_status(self) -> int:
        return _SPECS[self].http_status


@dataclass(frozen=True)
class _ErrorSpec:
    message: str
    http_status: int


_SPECS: Mapping[JsonRpcErrorCode, _ErrorSpec] = {
    JsonRpcErrorCode.PARSE_ERROR: _ErrorSpec("Parse error", 400),
    JsonRpcErrorCode.INVALID_REQUEST: _ErrorSpec("Invalid Request", 400),
    JsonRpcErrorCode.METHOD_NOT_FOUND: _ErrorSpec("Method not found", 404),
    JsonRpcErrorCode.INVALID_PARAMS: _ErrorSpec("Invalid params", 400),
    JsonRpcErrorCode.INTERNAL_ERROR: _ErrorSpec("Internal error", 500),
}


class ProtocolError(Exception):
    """A failure that is reported to the client as a JSON-RPC error object."""

    code: JsonRpcErrorCode = JsonRpcErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        data: Any | None = None,
        request_id: Any | None = None,
    ) -> None:
        self.message = message or self.code.default_message
        self.data = data
        self.request_id = request_id
        super().__init__(self.message)

    def to_error_object(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class ParseError(ProtocolError):
    code = JsonRpcErrorCode.PARSE_ERROR


class InvalidRequestError(ProtocolError):
    code = JsonRpcErrorCode.INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    code = JsonRpcErrorCode.METHOD_NOT_FOUND


class InvalidParamsError(ProtocolError):
    code = JsonRpcErrorCode.INVALID_PARAMS


class InternalError(ProtocolError):
    code = JsonRpcErrorCode.INTERNAL_ERROR


class ToolError(Exception):
    """Raised by tool handlers to report a failure with structured detail.

    The dispatcher maps it to ``-32603`` and keeps ``data`` in ``error.data``.
    """

    code: JsonRpcErrorCode = JsonRpcErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, data: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = dict(data or {})


class ToolInputError(ToolError):
    """Raised when tool arguments fail validation; ``details`` ends up in ``error.data``."""

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, data={"details": dict(details or {})})
        self.details = dict(details or {})


class DuplicateToolError(ValueError):
    """Raised when a tool name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(f"tool '{name}' already registered")
        self.name = name


class PortUnavailableError(OSError):
    """Raised when no port within the retry budget could be bound."""

    def __init__(self, host: str, start_port: int, attempts: int) -> None:
        last_port = start_port + attempts - 1
        super().__init__(
            f"Could not bind {host} on ports {start_port}-{last_port} "
            f"after {attempts} attempt(s)"
        )
        self.host = host
        self.start_port = start_port
        self.attempts = attempts
