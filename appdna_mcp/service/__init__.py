"""Protocol service layer: codec, errors and dispatcher (lazy exports)."""
from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING

__all__ = [
    "ConnectionState",
    "Dispatcher",
    "ProtocolError",
    "ProtocolState",
    "ServerInfo",
    "decode",
    "encode",
    "error_response",
]

_EXPORT_MAP = {
    "ConnectionState": "appdna_mcp.service.dispatcher",
    "Dispatcher": "appdna_mcp.service.dispatcher",
    "ProtocolError": "appdna_mcp.service.errors",
    "ProtocolState": "appdna_mcp.service.dispatcher",
    "ServerInfo": "appdna_mcp.service.dispatcher",
    "decode": "appdna_mcp.service.codec",
    "encode": "appdna_mcp.service.codec",
    "error_response": "appdna_mcp.service.codec",
}

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .codec import decode, encode, error_response
    from .dispatcher import ConnectionState, Dispatcher, ProtocolState, ServerInfo
    from .errors import ProtocolError


def __getattr__(name: str):  # pragma: no cover - thin loader
    if name not in _EXPORT_MAP:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORT_MAP[name])
    value = getattr(module, name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:  # pragma: no cover - thin loader
    return sorted(set(globals()) | set(__all__))
