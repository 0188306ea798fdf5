from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from appdna_mcp import __version__
from appdna_mcp.logging import InvocationLogEvent, InvocationLogWriter
from appdna_mcp.models import JsonRpcNotification, JsonRpcRequest, JsonRpcResponse
from appdna_mcp.observability import log_event
from appdna_mcp.registry import ToolRegistry

from .codec import decode, error_response
from .errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ProtocolError,
    ToolError,
)

__all__ = [
    "ConnectionState",
    "DEFAULT_SERVER_NAME",
    "Dispatcher",
    "MCP_PROTOCOL_VERSION",
    "ProtocolState",
    "ServerInfo",
]

LOGGER = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_SERVER_NAME = "AppDNA MCP Server"

_SERVER_CAPABILITIES: dict[str, Any] = {
    "tools": {"listChanged": False},
    "logging": {},
}

_CLIENT_NOTIFICATIONS = frozenset(
    {"notifications/initialized", "initialized", "notifications/cancelled", "$/cancel"}
)


class ProtocolState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SHUTDOWN = "shutdown"


@dataclass(slots=True)
class ConnectionState:
    """Handshake state for one logical client connection."""

    transport: str
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    state: ProtocolState = ProtocolState.UNINITIALIZED
    client_info: dict[str, Any] = field(default_factory=dict)
    protocol_version: str | None = None
    initialize_count: int = 0

    @property
    def initialized(self) -> bool:
        return self.initialize_count > 0


@dataclass(frozen=True, slots=True)
class ServerInfo:
    name: str = DEFAULT_SERVER_NAME
    version: str = __version__
    description: str = "MCP server for interacting with AppDNA model data"
    protocol_version: str = MCP_PROTOCOL_VERSION

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "version": self.version, "description": self.description}


_MethodHandler = Callable[[JsonRpcRequest, ConnectionState], Awaitable[Any]]


class Dispatcher:
    """Route JSON-RPC requests to protocol methods and registered tools.

    One dispatcher serves every transport; per-connection handshake state lives in the
    :class:`ConnectionState` passed with each request. Concurrent requests are not
    serialised here; tools that share state guard it themselves.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        server_info: ServerInfo | None = None,
        invocation_log: InvocationLogWriter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._server_info = server_info or ServerInfo()
        self._invocation_log = invocation_log
        self._logger = logger or LOGGER
        self._methods: dict[str, _MethodHandler] = {
            "initialize": self._initialize,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "mcp/execute": self._tools_call,
            "shutdown": self._shutdown,
            "ping": self._ping,
        }

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def server_info(self) -> ServerInfo:
        return self._server_info

    def new_connection(
        self, transport: str, connection_id: str | None = None
    ) -> ConnectionState:
        if connection_id is None:
            return ConnectionState(transport=transport)
        return ConnectionState(transport=transport, connection_id=connection_id)

    def describe(self) -> dict[str, Any]:
        """Capability advertisement shared by ``initialize`` and the discovery routes."""

        return {
            "protocolVersion": self._server_info.protocol_version,
            "capabilities": copy.deepcopy(_SERVER_CAPABILITIES),
            "serverInfo": self._server_info.to_dict(),
            "tools": self._registry.list(),
        }

    def ready_notification(self) -> JsonRpcNotification:
        return JsonRpcNotification(method="mcp/ready", params={"tools": self._registry.list()})

    async def handle_raw(
        self, raw: bytes | str, connection: ConnectionState
    ) -> JsonRpcResponse | None:
        """Decode ``raw`` and dispatch it; decode failures become error responses."""

        try:
            request = decode(raw)
        except ProtocolError as exc:
            log_event(
                event="decode",
                transport=connection.transport,
                status="error",
                code=int(exc.code),
                id=exc.request_id,
                connection=connection.connection_id,
            )
            return error_response(exc)
        return await self.dispatch(request, connection)

    async def dispatch(
        self, request: JsonRpcRequest, connection: ConnectionState
    ) -> JsonRpcResponse | None:
        """Execute ``request``; returns ``None`` for notifications."""

        if request.is_notification:
            if request.method == "initialize":
                return error_response(InvalidRequestError("Invalid Request: Missing id"))
            await self._notify(request, connection)
            return None

        try:
            handler = self._methods.get(request.method)
            if handler is None:
                raise MethodNotFoundError(
                    f"Method not found: {request.method}",
                    data={"method": request.method},
                )
            result = await handler(request, connection)
        except ProtocolError as exc:
            response = error_response(exc, request.id)
        else:
            response = JsonRpcResponse.success(request.id, result)

        log_event(
            event=request.method,
            transport=connection.transport,
            status="ok" if response.ok else "error",
            id=request.id,
            code=response.error.code if response.error is not None else None,
            connection=connection.connection_id,
        )
        return response

    async def _notify(self, request: JsonRpcRequest, connection: ConnectionState) -> None:
        if request.method in _CLIENT_NOTIFICATIONS:
            self._logger.debug(
                "Client notification %s on %s", request.method, connection.connection_id
            )
            return
        handler = self._methods.get(request.method)
        if handler is None:
            self._logger.debug("Ignoring unknown notification %s", request.method)
            return
        try:
            await handler(request, connection)
        except ProtocolError as exc:
            self._logger.warning(
                "Notification %s failed (%s): %s", request.method, int(exc.code), exc.message
            )

    async def _initialize(self, request: JsonRpcRequest, connection: ConnectionState) -> Any:
        params = request.params_object() or {}
        connection.initialize_count += 1
        if connection.initialize_count > 1:
            self._logger.info(
                "Repeated initialize on %s (count=%d)",
                connection.connection_id,
                connection.initialize_count,
            )
        client_info = params.get("clientInfo")
        if isinstance(client_info, Mapping):
            connection.client_info = dict(client_info)
        requested_version = params.get("protocolVersion")
        if isinstance(requested_version, str):
            connection.protocol_version = requested_version
        connection.state = ProtocolState.READY
        return self.describe()

    async def _tools_list(self, request: JsonRpcRequest, connection: ConnectionState) -> Any:
        return {"tools": self._registry.list()}

    async def _shutdown(self, request: JsonRpcRequest, connection: ConnectionState) -> Any:
        connection.state = ProtocolState.SHUTDOWN
        return None

    async def _ping(self, request: JsonRpcRequest, connection: ConnectionState) -> Any:
        return {}

    async def _tools_call(self, request: JsonRpcRequest, connection: ConnectionState) -> Any:
        params = request.params_object()
        if params is None:
            raise InvalidParamsError("Invalid params: expected an object")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("Invalid params: Missing tool name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = params.get("parameters")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidParamsError(
                "Invalid params: arguments must be an object", data={"name": name}
            )

        definition = self._registry.resolve(name)
        if definition is None:
            raise MethodNotFoundError(f"Tool not found: {name}", data={"name": name})

        started = time.perf_counter()
        failure: ProtocolError | None = None
        result: Any = None
        try:
            outcome = await self._registry.invoke(definition, arguments)
            result = _format_tool_result(outcome)
        except ToolError as exc:
            failure = InternalError(exc.message, data={"name": name, **exc.data})
        except Exception as exc:
            self._logger.exception("Tool '%s' raised", name)
            failure = InternalError(
                f"Tool '{name}' failed: {exc}",
                data={"name": name, "error": str(exc), "type": type(exc).__name__},
            )

        self._record(
            request,
            connection,
            tool=name,
            arguments=arguments,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            failure=failure,
        )
        if failure is not None:
            raise failure
        return result

    def _record(
        self,
        request: JsonRpcRequest,
        connection: ConnectionState,
        *,
        tool: str,
        arguments: Mapping[str, Any],
        duration_ms: float,
        failure: ProtocolError | None,
    ) -> None:
        if self._invocation_log is None:
            return
        try:
            arguments_bytes = len(json.dumps(arguments, default=str).encode("utf-8"))
        except (TypeError, ValueError):
            arguments_bytes = 0
        event = InvocationLogEvent(
            ts=datetime.now(UTC),
            transport=connection.transport,
            connection_id=connection.connection_id,
            request_id=request.id,
            tool=tool,
            method=request.method,
            status="error" if failure is not None else "ok",
            duration_ms=duration_ms,
            arguments_bytes=arguments_bytes,
            error=failure.to_error_object() if failure is not None else None,
        )
        self._invocation_log.write(event)


def _format_tool_result(outcome: Any) -> dict[str, Any]:
    if isinstance(outcome, Mapping) and isinstance(outcome.get("content"), list):
        payload = dict(outcome)
    else:
        if isinstance(outcome, str):
            text = outcome
        else:
            text = json.dumps(outcome, indent=2, ensure_ascii=False)
        payload = {"content": [{"type": "text", "text": text}]}
        if isinstance(outcome, Mapping):
            payload["structuredContent"] = dict(outcome)
    # Surface unserialisable results here rather than in the transport writer.
    json.dumps(payload)
    return payload
