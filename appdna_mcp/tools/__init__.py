"""Built-in tool collaborators."""

from __future__ import annotations

from appdna_mcp.registry import ToolRegistry

from .user_stories import UserStoryStore, register_user_story_tools

__all__ = ["UserStoryStore", "build_default_registry", "register_user_story_tools"]


def build_default_registry(store: UserStoryStore | None = None) -> ToolRegistry:
    """Return a frozen registry holding the built-in tools."""

    registry = ToolRegistry()
    register_user_story_tools(registry, store if store is not None else UserStoryStore())
    return registry.freeze()
