"""HTTP/SSE transport scenarios against the full application."""
from __future__ import annotations

import asyncio
import json

import httpx

from appdna_mcp.http.main import create_app
from appdna_mcp.service.dispatcher import Dispatcher
from appdna_mcp.tools import build_default_registry
from tests.helpers.asgi import SseStream, event_data, event_name


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def test_unknown_tool_error_is_broadcast_to_the_open_session() -> None:
    app = create_app(Dispatcher(build_default_registry()), keepalive_interval=5.0)

    async def scenario() -> None:
        async with SseStream(app, "/sse") as stream:
            await stream.next_event()
            await stream.next_event()

            async with _client(app) as http:
                response = await http.post(
                    "/message",
                    content=json.dumps(
                        {
                            "jsonrpc": "2.0",
                            "id": "a",
                            "method": "tools/call",
                            "params": {"name": "does_not_exist", "arguments": {}},
                        }
                    ),
                )
            assert response.status_code == 202

            await app.state.relay.drain()
            event = await stream.next_event()
            assert event_name(event) == "message"
            payload = json.loads(event_data(event))
            assert payload["jsonrpc"] == "2.0"
            assert payload["id"] == "a"
            assert payload["error"]["code"] == -32601
            assert payload["error"]["data"] == {"name": "does_not_exist"}

    asyncio.run(scenario())


def test_full_handshake_over_sse() -> None:
    app = create_app(Dispatcher(build_default_registry()), keepalive_interval=5.0)

    async def scenario() -> None:
        async with SseStream(app, "/sse", "sessionId=client-7") as stream:
            endpoint = event_data(await stream.next_event())
            await stream.next_event()

            requests = [
                {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
                {"jsonrpc": "2.0", "method": "notifications/initialized"},
                {
                    "jsonrpc": "2.0",
                    "id": 2,
                    "method": "tools/call",
                    "params": {
                        "name": "list_user_stories",
                        "arguments": {"includeIgnored": True},
                    },
                },
            ]
            async with _client(app) as http:
                for request in requests:
                    response = await http.post(endpoint, content=json.dumps(request))
                    assert response.status_code == 202
                    assert response.json()["sessionId"] == "client-7"
                    await app.state.relay.drain()

            first = json.loads(event_data(await stream.next_event()))
            second = json.loads(event_data(await stream.next_event()))
            assert first["id"] == 1
            assert first["result"]["protocolVersion"] == "2024-11-05"
            assert second["id"] == 2
            assert second["result"]["structuredContent"]["count"] == 0

            session = app.state.sessions.get("client-7")
            assert session is not None
            assert session.connection.initialized

    asyncio.run(scenario())
