"""SSE session table and frame formatting."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from appdna_mcp.service.codec import encode
from appdna_mcp.service.dispatcher import ConnectionState, Dispatcher

__all__ = ["KEEPALIVE_FRAME", "Session", "SessionManager", "format_sse"]

LOGGER = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse(data: str, *, event: str | None = None) -> str:
    """Render one SSE event; multi-line data becomes several ``data:`` fields."""

    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {part}" for part in (data.splitlines() or [""]))
    return "\n".join(lines) + "\n\n"


@dataclass(eq=False)
class Session:
    """One SSE client. The outbound queue is owned by the session; ``None`` ends the stream."""

    session_id: str
    connection: ConnectionState
    created_at: float = field(default_factory=time.time)
    queue: asyncio.Queue[str | None] = field(default_factory=asyncio.Queue)
    closed: bool = False

    def push(self, frame: str) -> bool:
        if self.closed:
            return False
        self.queue.put_nowait(frame)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.queue.put_nowait(None)


class SessionManager:
    """Session table owned by the event loop; every mutation happens on that loop."""

    def __init__(self, dispatcher: Dispatcher, *, logger: logging.Logger | None = None) -> None:
        self._dispatcher = dispatcher
        self._sessions: dict[str, Session] = {}
        self._logger = logger or LOGGER

    def open(self, session_id: str | None = None) -> Session:
        session_id = session_id or secrets.token_urlsafe(24)
        previous = self._sessions.get(session_id)
        if previous is not None:
            self._logger.info("Session %s reopened; closing previous stream", session_id)
            previous.close()
        session = Session(
            session_id=session_id,
            connection=self._dispatcher.new_connection("sse", session_id),
        )
        self._sessions[session_id] = session
        self._logger.info("SSE session %s opened (%d active)", session_id, len(self._sessions))
        return session

    def close(self, session: Session) -> bool:
        """Close ``session``; it is only unregistered while it is still the current one."""

        session.close()
        if self._sessions.get(session.session_id) is not session:
            return False
        del self._sessions[session.session_id]
        self._logger.info(
            "SSE session %s closed (%d active)", session.session_id, len(self._sessions)
        )
        return True

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def connection_for(self, session_id: str | None) -> ConnectionState:
        """Protocol state for a POST; envelopes naming no session each get their own."""

        if session_id is None:
            return self._dispatcher.new_connection("http")
        session = self._sessions.get(session_id)
        if session is not None:
            return session.connection
        return self._dispatcher.new_connection("sse", session_id)

    def deliver(self, session_id: str, message: BaseModel | Mapping[str, Any]) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            self._logger.warning("Dropping message for unknown or closed session %s", session_id)
            return False
        return session.push(_message_frame(message))

    def broadcast(self, message: BaseModel | Mapping[str, Any]) -> int:
        frame = _message_frame(message)
        return sum(1 for session in list(self._sessions.values()) if session.push(frame))

    def close_all(self) -> None:
        for session in list(self._sessions.values()):
            self.close(session)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(tuple(self._sessions.values()))


def _message_frame(message: BaseModel | Mapping[str, Any]) -> str:
    return format_sse(encode(message).decode("utf-8"), event="message")
