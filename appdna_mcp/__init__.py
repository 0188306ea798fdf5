"""AppDNA MCP server package."""
from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = ["Dispatcher", "ToolRegistry", "__version__", "create_app", "main"]

_EXPORT_MAP = {
    "Dispatcher": "appdna_mcp.service.dispatcher",
    "ToolRegistry": "appdna_mcp.registry",
    "create_app": "appdna_mcp.http.main",
    "main": "appdna_mcp.cli",
}

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from appdna_mcp.cli import main
    from appdna_mcp.http.main import create_app
    from appdna_mcp.registry import ToolRegistry
    from appdna_mcp.service.dispatcher import Dispatcher


def __getattr__(name: str):  # pragma: no cover - thin loader
    if name not in _EXPORT_MAP:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORT_MAP[name])
    value = getattr(module, name)
    globals()[name] = value
    return value
