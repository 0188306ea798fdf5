from __future__ import annotations

import asyncio
import pathlib
import sys
from typing import Any

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from appdna_mcp.registry import ToolRegistry  # noqa: E402
from appdna_mcp.service.dispatcher import Dispatcher  # noqa: E402
from appdna_mcp.service.errors import ToolError  # noqa: E402


@pytest.fixture(scope="session")
def repo_root() -> pathlib.Path:
    return REPO_ROOT


def build_test_registry() -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool(
        "echo",
        description="Return the given text",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    )
    async def echo(arguments: dict[str, Any]) -> dict[str, Any]:
        return {"echo": arguments["text"]}

    @registry.tool(
        "slow_echo",
        description="Return the given text after a delay",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}, "delay": {"type": "number"}},
            "required": ["text"],
        },
    )
    async def slow_echo(arguments: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(arguments.get("delay", 0.2))
        return {"echo": arguments["text"]}

    @registry.tool(
        "add",
        description="Add two integers",
        input_schema={
            "type": "object",
            "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
            "required": ["a", "b"],
        },
    )
    def add(arguments: dict[str, Any]) -> int:
        return arguments["a"] + arguments["b"]

    @registry.tool("explode", description="Always raises")
    def explode(arguments: dict[str, Any]) -> None:
        raise RuntimeError("boom")

    @registry.tool("reject", description="Raises a structured tool error")
    async def reject(arguments: dict[str, Any]) -> None:
        raise ToolError("request rejected", data={"reason": "quota"})

    return registry.freeze()


@pytest.fixture
def registry() -> ToolRegistry:
    return build_test_registry()


@pytest.fixture
def dispatcher(registry: ToolRegistry) -> Dispatcher:
    return Dispatcher(registry)
