"""HTTP/SSE transport for the MCP server."""

from .main import create_app
from .ports import bind_socket
from .relay import MessageRelay
from .sessions import Session, SessionManager

__all__ = ["MessageRelay", "Session", "SessionManager", "bind_socket", "create_app"]
