"""JSON-RPC 2.0 envelope models shared by every MCP transport."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

__all__ = [
    "JSONRPC_VERSION",
    "JsonRpcErrorObject",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RequestId",
]

JSONRPC_VERSION = "2.0"

# Strict members keep the wire type intact: "1" never becomes 1 and True is never an id.
RequestId = Union[StrictStr, StrictInt, StrictFloat, None]


class JsonRpcRequest(BaseModel):
    """Inbound request or notification."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    jsonrpc: Literal["2.0"]
    id: RequestId = None
    method: StrictStr = Field(..., min_length=1)
    params: dict[str, Any] | list[Any] | None = None

    @property
    def is_notification(self) -> bool:
        """True when the ``id`` member was absent, not merely null."""

        return "id" not in self.model_fields_set

    def params_object(self) -> dict[str, Any] | None:
        if self.params is None:
            return {}
        if isinstance(self.params, dict):
            return self.params
        return None


class JsonRpcErrorObject(BaseModel):
    """The ``error`` member of a failed response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: int
    message: str
    data: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class JsonRpcResponse(BaseModel):
    """Outbound response carrying either ``result`` or ``error``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: RequestId = None
    result: Any | None = None
    error: JsonRpcErrorObject | None = None

    @classmethod
    def success(cls, request_id: Any, result: Any) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: Any,
        *,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcErrorObject(code=code, message=message, data=data))

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        else:
            payload["result"] = self.result
        return payload


class JsonRpcNotification(BaseModel):
    """Server-initiated message without an ``id``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            payload["params"] = self.params
        return payload
