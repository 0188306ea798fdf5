from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from appdna_mcp.service.dispatcher import Dispatcher

from .cors import PermissiveCorsMiddleware
from .relay import MessageRelay
from .routes import build_router
from .sessions import SessionManager

__all__ = ["create_app"]


def create_app(
    dispatcher: Dispatcher,
    *,
    keepalive_interval: float = 30.0,
    enable_openapi: bool = False,
) -> FastAPI:
    """Return a FastAPI application exposing the MCP HTTP/SSE endpoints."""

    if keepalive_interval <= 0:
        raise ValueError("keepalive_interval must be positive")

    sessions = SessionManager(dispatcher)
    relay = MessageRelay(dispatcher, sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await relay.drain()
        sessions.close_all()

    docs_url = "/docs" if enable_openapi else None
    openapi_url = "/openapi.json" if enable_openapi else None
    app = FastAPI(
        title=dispatcher.server_info.name,
        version=dispatcher.server_info.version,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher
    app.state.sessions = sessions
    app.state.relay = relay
    app.include_router(
        build_router(dispatcher, sessions, relay, keepalive_interval=keepalive_interval)
    )
    app.add_middleware(PermissiveCorsMiddleware)
    return app
