"""Stdio transport for the MCP server."""

from .buffer import LineBuffer
from .server import StdioTransport, open_stdio_streams

__all__ = ["LineBuffer", "StdioTransport", "open_stdio_streams"]
