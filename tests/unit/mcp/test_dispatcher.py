from __future__ import annotations

import asyncio
import json
from typing import Any

from appdna_mcp.models import JsonRpcRequest
from appdna_mcp.registry import ToolRegistry
from appdna_mcp.service.dispatcher import Dispatcher, ProtocolState, ServerInfo


def _request(method: str, params: Any = None, request_id: Any = 1) -> JsonRpcRequest:
    payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    return JsonRpcRequest.model_validate(payload)


def _notification(method: str, params: Any = None) -> JsonRpcRequest:
    payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        payload["params"] = params
    return JsonRpcRequest.model_validate(payload)


def _call(dispatcher: Dispatcher, request: JsonRpcRequest, connection=None) -> dict[str, Any]:
    connection = connection or dispatcher.new_connection("test")
    response = asyncio.run(dispatcher.dispatch(request, connection))
    assert response is not None
    return response.to_dict()


def test_initialize_advertises_same_tools_as_tools_list(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    init = _call(
        dispatcher,
        _request(
            "initialize",
            {"protocolVersion": "2024-11-05", "clientInfo": {"name": "pytest", "version": "1"}},
        ),
        connection,
    )
    listed = _call(dispatcher, _request("tools/list", request_id=2), connection)

    assert init["result"]["protocolVersion"] == "2024-11-05"
    assert init["result"]["serverInfo"]["name"] == "AppDNA MCP Server"
    assert init["result"]["capabilities"]["tools"] == {"listChanged": False}
    assert init["result"]["tools"] == listed["result"]["tools"]
    assert [tool["name"] for tool in listed["result"]["tools"]] == [
        "echo",
        "slow_echo",
        "add",
        "explode",
        "reject",
    ]
    assert connection.state is ProtocolState.READY
    assert connection.client_info == {"name": "pytest", "version": "1"}


def test_repeated_initialize_is_tolerated(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    first = _call(dispatcher, _request("initialize", {}), connection)
    second = _call(dispatcher, _request("initialize", {}, request_id=2), connection)

    assert first["result"] == second["result"]
    assert connection.initialize_count == 2


def test_initialize_without_id_is_invalid_request(dispatcher: Dispatcher) -> None:
    response = asyncio.run(
        dispatcher.dispatch(_notification("initialize", {}), dispatcher.new_connection("test"))
    )
    assert response is not None
    payload = response.to_dict()
    assert payload["id"] is None
    assert payload["error"]["code"] == -32600


def test_unknown_method_reports_name(dispatcher: Dispatcher) -> None:
    payload = _call(dispatcher, _request("resources/list", request_id="r1"))
    assert payload["id"] == "r1"
    assert payload["error"]["code"] == -32601
    assert "resources/list" in payload["error"]["message"]


def test_notifications_produce_no_response(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    for method in ("notifications/initialized", "tools/list", "totally/unknown"):
        assert asyncio.run(dispatcher.dispatch(_notification(method), connection)) is None


def test_tools_call_wraps_mapping_result(dispatcher: Dispatcher) -> None:
    payload = _call(
        dispatcher, _request("tools/call", {"name": "echo", "arguments": {"text": "hi"}})
    )
    result = payload["result"]
    assert result["structuredContent"] == {"echo": "hi"}
    assert result["content"] == [{"type": "text", "text": json.dumps({"echo": "hi"}, indent=2)}]


def test_tools_call_runs_sync_handler_and_wraps_scalar(dispatcher: Dispatcher) -> None:
    payload = _call(
        dispatcher, _request("tools/call", {"name": "add", "arguments": {"a": 2, "b": 3}})
    )
    assert payload["result"] == {"content": [{"type": "text", "text": "5"}]}


def test_mcp_execute_alias_and_parameters_fallback(dispatcher: Dispatcher) -> None:
    payload = _call(
        dispatcher, _request("mcp/execute", {"name": "echo", "parameters": {"text": "legacy"}})
    )
    assert payload["result"]["structuredContent"] == {"echo": "legacy"}


def test_content_results_pass_through() -> None:
    registry = ToolRegistry()
    content = {"content": [{"type": "text", "text": "raw"}], "isError": False}

    @registry.tool("raw", description="Returns MCP content directly")
    async def raw(arguments: dict[str, Any]) -> dict[str, Any]:
        return content

    payload = _call(Dispatcher(registry), _request("tools/call", {"name": "raw"}))
    assert payload["result"] == content


def test_unknown_tool_is_method_not_found_with_name(dispatcher: Dispatcher) -> None:
    payload = _call(
        dispatcher,
        _request("tools/call", {"name": "does_not_exist", "arguments": {}}, request_id="a"),
    )
    assert payload["id"] == "a"
    assert payload["error"]["code"] == -32601
    assert payload["error"]["data"] == {"name": "does_not_exist"}


def test_parameter_errors(dispatcher: Dispatcher) -> None:
    cases = [
        _request("tools/call", ["echo"]),
        _request("tools/call", {"arguments": {}}),
        _request("tools/call", {"name": 12}),
        _request("tools/call", {"name": "echo", "arguments": ["hi"]}),
    ]
    for request in cases:
        payload = _call(dispatcher, request)
        assert payload["error"]["code"] == -32602, request


def test_schema_violation_details_are_reported(dispatcher: Dispatcher) -> None:
    payload = _call(dispatcher, _request("tools/call", {"name": "echo", "arguments": {}}))
    assert payload["error"]["code"] == -32603
    assert payload["error"]["data"]["name"] == "echo"
    assert "text" in payload["error"]["data"]["details"]["message"]


def test_argument_type_violation_is_internal_error(dispatcher: Dispatcher) -> None:
    payload = _call(
        dispatcher,
        _request("tools/call", {"name": "echo", "arguments": {"text": 5}}, request_id=8),
    )
    assert payload["id"] == 8
    assert payload["error"]["code"] == -32603
    assert payload["error"]["data"]["details"]["instancePath"] == ["text"]


def test_handler_exception_becomes_internal_error(dispatcher: Dispatcher) -> None:
    payload = _call(dispatcher, _request("tools/call", {"name": "explode"}, request_id=9))
    assert payload["id"] == 9
    assert payload["error"]["code"] == -32603
    assert payload["error"]["data"] == {"name": "explode", "error": "boom", "type": "RuntimeError"}


def test_tool_error_keeps_its_data(dispatcher: Dispatcher) -> None:
    payload = _call(dispatcher, _request("tools/call", {"name": "reject"}))
    assert payload["error"]["code"] == -32603
    assert payload["error"]["message"] == "request rejected"
    assert payload["error"]["data"] == {"name": "reject", "reason": "quota"}


def test_unserialisable_result_is_internal_error() -> None:
    registry = ToolRegistry()

    @registry.tool("opaque", description="Returns an object JSON cannot encode")
    async def opaque(arguments: dict[str, Any]) -> Any:
        return {"value": object()}

    payload = _call(Dispatcher(registry), _request("tools/call", {"name": "opaque"}))
    assert payload["error"]["code"] == -32603
    assert payload["error"]["data"]["type"] == "TypeError"


def test_cancellation_is_not_swallowed() -> None:
    registry = ToolRegistry()

    @registry.tool("cancelled", description="Raises CancelledError")
    async def cancelled(arguments: dict[str, Any]) -> None:
        raise asyncio.CancelledError()

    dispatcher = Dispatcher(registry)

    async def scenario() -> bool:
        try:
            await dispatcher.dispatch(
                _request("tools/call", {"name": "cancelled"}), dispatcher.new_connection("t")
            )
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(scenario()) is True


def test_shutdown_is_acknowledged_and_calls_keep_working(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    _call(dispatcher, _request("initialize", {}), connection)

    shutdown = _call(dispatcher, _request("shutdown", request_id=2), connection)
    assert shutdown == {"jsonrpc": "2.0", "id": 2, "result": None}
    assert connection.state is ProtocolState.SHUTDOWN

    still_served = _call(
        dispatcher,
        _request("tools/call", {"name": "echo", "arguments": {"text": "x"}}, request_id=3),
        connection,
    )
    assert still_served["result"]["structuredContent"] == {"echo": "x"}
    missing = _call(
        dispatcher,
        _request("tools/call", {"name": "does_not_exist"}, request_id="m"),
        connection,
    )
    assert missing["error"]["code"] == -32601

    listed = _call(dispatcher, _request("tools/list", request_id=4), connection)
    assert "result" in listed

    _call(dispatcher, _request("initialize", {}, request_id=5), connection)
    assert connection.state is ProtocolState.READY
    again = _call(
        dispatcher,
        _request("tools/call", {"name": "echo", "arguments": {"text": "x"}}, request_id=6),
        connection,
    )
    assert again["result"]["structuredContent"] == {"echo": "x"}


def test_ping_returns_empty_object(dispatcher: Dispatcher) -> None:
    assert _call(dispatcher, _request("ping"))["result"] == {}


def test_tools_call_works_before_initialize(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    payload = _call(
        dispatcher, _request("tools/call", {"name": "echo", "arguments": {"text": "early"}}),
        connection,
    )
    assert payload["result"]["structuredContent"] == {"echo": "early"}
    assert connection.state is ProtocolState.UNINITIALIZED


def test_handle_raw_maps_decode_failures(dispatcher: Dispatcher) -> None:
    connection = dispatcher.new_connection("test")
    parse = asyncio.run(dispatcher.handle_raw(b'{"id": 5, "method": ', connection))
    invalid = asyncio.run(dispatcher.handle_raw(b'{"jsonrpc":"2.0","id":"z"}', connection))

    assert parse is not None and parse.to_dict()["error"]["code"] == -32700
    assert parse.id == 5
    assert invalid is not None and invalid.to_dict()["error"]["code"] == -32600
    assert invalid.id == "z"


def test_ready_notification_matches_describe(dispatcher: Dispatcher) -> None:
    ready = dispatcher.ready_notification().to_dict()
    assert ready["method"] == "mcp/ready"
    assert "id" not in ready
    assert ready["params"]["tools"] == dispatcher.describe()["tools"]


def test_custom_server_info() -> None:
    dispatcher = Dispatcher(ToolRegistry(), server_info=ServerInfo(name="x", version="9"))
    assert dispatcher.describe()["serverInfo"]["name"] == "x"
    assert dispatcher.describe()["tools"] == []
