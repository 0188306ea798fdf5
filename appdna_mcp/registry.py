"""Tool registry: the single mapping from tool name to schema and handler."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from appdna_mcp.service.errors import DuplicateToolError, ToolInputError
from appdna_mcp.validation import SchemaCache, describe_validation_error

__all__ = ["ToolDefinition", "ToolHandler", "ToolRegistry"]

ToolHandler = Callable[[dict[str, Any]], Any]

_EMPTY_SCHEMA: Mapping[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A named operation exposed to MCP clients."""

    name: str
    description: str
    handler: ToolHandler
    input_schema: Mapping[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))
    title: str | None = None
    validate_input: bool = True

    def metadata(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": _copy_schema(self.input_schema),
        }
        if self.title:
            payload["title"] = self.title
        return payload

    async def invoke(
        self, arguments: Mapping[str, Any], *, schemas: SchemaCache | None = None
    ) -> Any:
        """Validate ``arguments`` (when enabled) and run the handler.

        ``schemas`` supplies compiled validators; the owning registry passes its own cache.
        """

        payload = dict(arguments)
        if self.validate_input:
            cache = schemas if schemas is not None else SchemaCache()
            error = cache.first_error(self.input_schema, payload)
            if error is not None:
                raise ToolInputError(
                    f"Invalid arguments for tool '{self.name}': {error.message}",
                    details=describe_validation_error(error),
                )
        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(payload)
        result = await asyncio.to_thread(self.handler, payload)
        if inspect.isawaitable(result):
            return await result
        return result


class ToolRegistry:
    """Insertion-ordered tool table.

    Built once at startup and frozen; lookups need no locking afterwards.
    """

    def __init__(self, *, allow_late_registration: bool = False) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._schemas = SchemaCache()
        self._frozen = False
        self._allow_late_registration = allow_late_registration

    def register(self, definition: ToolDefinition) -> ToolDefinition:
        if self._frozen and not self._allow_late_registration:
            raise RuntimeError(
                f"cannot register tool '{definition.name}': registry is frozen"
            )
        name = definition.name
        if not isinstance(name, str) or not name:
            raise ValueError("tool definitions must have a non-empty 'name'")
        if not callable(definition.handler):
            raise TypeError(f"handler for tool '{name}' is not callable")
        if name in self._tools:
            raise DuplicateToolError(name)
        self._schemas.compile(definition.input_schema)
        self._tools[name] = definition
        return definition

    def tool(
        self,
        name: str,
        *,
        description: str,
        input_schema: Mapping[str, Any] | None = None,
        title: str | None = None,
        validate_input: bool = True,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering the wrapped function as a tool handler."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(
                ToolDefinition(
                    name=name,
                    description=description,
                    handler=handler,
                    input_schema=dict(input_schema or _EMPTY_SCHEMA),
                    title=title,
                    validate_input=validate_input,
                )
            )
            return handler

        return decorator

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def schemas(self) -> SchemaCache:
        return self._schemas

    def resolve(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    async def invoke(self, definition: ToolDefinition, arguments: Mapping[str, Any]) -> Any:
        return await definition.invoke(arguments, schemas=self._schemas)

    def names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    def list(self) -> list[dict[str, Any]]:
        """Return tool metadata in registration order."""

        return [definition.metadata() for definition in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(tuple(self._tools.values()))


def _copy_schema(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy_schema(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy_schema(item) for item in value]
    return value
