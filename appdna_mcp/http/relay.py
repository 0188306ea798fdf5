from __future__ import annotations

import asyncio
import logging

from appdna_mcp.models import JsonRpcRequest
from appdna_mcp.service.codec import error_response
from appdna_mcp.service.dispatcher import ConnectionState, Dispatcher
from appdna_mcp.service.errors import InternalError

from .sessions import SessionManager

__all__ = ["MessageRelay"]

LOGGER = logging.getLogger(__name__)


class MessageRelay:
    """Execute POSTed envelopes in the background and push responses to SSE sessions."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        sessions: SessionManager,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._sessions = sessions
        self._logger = logger or LOGGER
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, request: JsonRpcRequest, session_id: str | None) -> asyncio.Task[None]:
        connection = self._sessions.connection_for(session_id)
        task = asyncio.create_task(self._run(request, connection, session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every submitted envelope has been answered (or dropped)."""

        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def _run(
        self, request: JsonRpcRequest, connection: ConnectionState, session_id: str | None
    ) -> None:
        try:
            response = await self._dispatcher.dispatch(request, connection)
        except Exception:
            self._logger.exception("Unhandled error while dispatching %s", request.method)
            response = error_response(InternalError(), request.id)
        if response is None:
            return
        if session_id is None:
            delivered = self._sessions.broadcast(response)
            if not delivered:
                self._logger.warning(
                    "No open SSE session for response to %s (id=%r)", request.method, request.id
                )
            return
        self._sessions.deliver(session_id, response)
