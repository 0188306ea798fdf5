"""Wire models for the MCP server."""

from .jsonrpc import (
    JSONRPC_VERSION,
    JsonRpcErrorObject,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    RequestId,
)

__all__ = [
    "JSONRPC_VERSION",
    "JsonRpcErrorObject",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RequestId",
]
