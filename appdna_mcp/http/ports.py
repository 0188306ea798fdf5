"""Bounded sequential port probing for the HTTP listener."""

from __future__ import annotations

import errno
import logging
import socket

from appdna_mcp.service.errors import PortUnavailableError

__all__ = ["bind_socket"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE = frozenset({errno.EADDRINUSE, errno.EACCES})


def bind_socket(host: str, port: int, *, attempts: int = 10) -> socket.socket:
    """Bind the first free port in ``port .. port + attempts - 1``.

    The bound socket itself is returned and handed to the server, so no other process can
    take the port between probing and listening.
    """

    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    for offset in range(attempts):
        candidate = port + offset
        if candidate > 65535:
            break
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.bind((host, candidate))
        except OSError as exc:
            sock.close()
            if exc.errno not in _RETRYABLE:
                raise
            LOGGER.warning("Port %d on %s unavailable (%s)", candidate, host, exc.strerror)
            continue
        sock.set_inheritable(True)
        if offset:
            LOGGER.info("Requested port %d was busy; bound %d instead", port, candidate)
        return sock
    raise PortUnavailableError(host, port, attempts)
