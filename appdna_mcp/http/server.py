from __future__ import annotations

import logging
import socket

import uvicorn

from appdna_mcp.config import ServerSettings
from appdna_mcp.service.dispatcher import Dispatcher

from .main import create_app
from .ports import bind_socket

__all__ = ["serve_http"]

LOGGER = logging.getLogger(__name__)

_UVICORN_LOG_LEVELS = {
    "DEBUG": "debug",
    "INFO": "info",
    "WARNING": "warning",
    "ERROR": "error",
}


async def serve_http(
    dispatcher: Dispatcher,
    settings: ServerSettings,
    *,
    sock: socket.socket | None = None,
) -> None:
    """Run the HTTP/SSE transport until uvicorn exits.

    Raises :class:`PortUnavailableError` when no port in the retry budget is free.
    """

    if sock is None:
        sock = bind_socket(settings.host, settings.port, attempts=settings.port_attempts)
    host, port = sock.getsockname()[:2]
    config = uvicorn.Config(
        create_app(dispatcher, keepalive_interval=settings.keepalive_interval),
        log_level=_UVICORN_LOG_LEVELS[settings.log_level],
        access_log=False,
        timeout_graceful_shutdown=settings.shutdown_grace,
    )
    server = uvicorn.Server(config)
    LOGGER.info("HTTP/SSE transport listening on http://%s:%d", host, port)
    try:
        await server.serve(sockets=[sock])
    finally:
        sock.close()
