from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from appdna_mcp.models import JsonRpcNotification
from appdna_mcp.service.codec import decode, encode, error_response
from appdna_mcp.service.dispatcher import Dispatcher
from appdna_mcp.service.errors import ProtocolError

from .relay import MessageRelay
from .sessions import KEEPALIVE_FRAME, Session, SessionManager, format_sse

__all__ = ["EXECUTE_PATH", "EventStreamResponse", "MESSAGE_PATH", "SSE_PATH", "build_router"]

LOGGER = logging.getLogger(__name__)

SSE_PATH = "/sse"
MESSAGE_PATH = "/message"
EXECUTE_PATH = "/mcp/execute"


class EventStreamResponse(StreamingResponse):
    """SSE response whose event generator is always closed, also after a failed write."""

    media_type = "text/event-stream"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except ClientDisconnect:
            LOGGER.debug("SSE client went away while a frame was being written")
        finally:
            await self.body_iterator.aclose()


def build_router(
    dispatcher: Dispatcher,
    sessions: SessionManager,
    relay: MessageRelay,
    *,
    keepalive_interval: float = 30.0,
) -> APIRouter:
    router = APIRouter()

    async def _event_stream(session: Session) -> AsyncIterator[str]:
        connected = JsonRpcNotification(
            method="mcp/connected",
            params={
                "sessionId": session.session_id,
                "serverInfo": dispatcher.server_info.to_dict(),
                "protocolVersion": dispatcher.server_info.protocol_version,
            },
        )
        try:
            yield format_sse(f"{MESSAGE_PATH}?sessionId={session.session_id}", event="endpoint")
            yield format_sse(encode(connected).decode("utf-8"))
            while True:
                try:
                    frame = await asyncio.wait_for(session.queue.get(), keepalive_interval)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            sessions.close(session)

    async def open_stream(request: Request) -> EventStreamResponse:
        session = sessions.open(request.query_params.get("sessionId") or None)
        return EventStreamResponse(
            _event_stream(session),
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "x-session-id": session.session_id,
            },
        )

    router.add_api_route("/", open_stream, methods=["GET"])
    router.add_api_route(SSE_PATH, open_stream, methods=["GET"])

    @router.post(MESSAGE_PATH)
    async def submit_message(request: Request) -> JSONResponse:
        body = await request.body()
        session_id = (
            request.headers.get("x-session-id") or request.query_params.get("sessionId") or None
        )
        try:
            envelope = decode(body)
        except ProtocolError as exc:
            response = error_response(exc)
            return JSONResponse(content=response.to_dict(), status_code=exc.code.http_status)
        relay.submit(envelope, session_id)
        return JSONResponse(
            content={"status": "accepted", "sessionId": session_id}, status_code=202
        )

    @router.post(EXECUTE_PATH)
    async def execute(request: Request) -> JSONResponse:
        """Run one envelope and answer in the HTTP body rather than over SSE."""

        try:
            envelope = decode(await request.body())
        except ProtocolError as exc:
            return JSONResponse(
                content=error_response(exc).to_dict(), status_code=exc.code.http_status
            )
        response = await dispatcher.dispatch(envelope, sessions.connection_for(None))
        if response is None:
            return JSONResponse(content={"status": "accepted", "sessionId": None}, status_code=202)
        return JSONResponse(content=response.to_dict())

    @router.get("/.well-known/mcp")
    def well_known() -> dict[str, Any]:
        description = dispatcher.describe()
        info = description["serverInfo"]
        return {
            "name": info["name"],
            "version": info["version"],
            "description": info["description"],
            "protocolVersion": description["protocolVersion"],
            "capabilities": description["capabilities"],
            "tools": description["tools"],
            "transport": {
                "type": "sse",
                "sse": SSE_PATH,
                "message": MESSAGE_PATH,
                "execute": EXECUTE_PATH,
            },
        }

    @router.get("/mcp")
    def describe() -> dict[str, Any]:
        return dispatcher.describe()

    @router.get("/mcp/ready")
    def ready() -> dict[str, Any]:
        return dispatcher.ready_notification().to_dict()

    @router.get("/healthz")
    def health() -> dict[str, Any]:
        return {"status": "ok", "sessions": len(sessions)}

    return router
