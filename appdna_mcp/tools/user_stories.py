"""User story tools backed by an in-memory store."""

from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import asdict, dataclass
from typing import Any

from appdna_mcp.registry import ToolDefinition, ToolRegistry

__all__ = [
    "UserStory",
    "UserStoryStore",
    "extract_role",
    "is_valid_story_format",
    "register_user_story_tools",
]

_WANTS_TO = re.compile(
    r"^A\s+\[?(?P<role>\w+(?: \w+)*)\]?\s+wants to\s+\[?(View all|view|add|update|delete)\]?"
    r"\s+(a|an|all)\s+\[?\w+(?: \w+)*\]?$",
    re.IGNORECASE,
)
_I_WANT_TO = re.compile(
    r"^As a\s+\[?(?P<role>\w+(?: \w+)*)\]?\s*,?\s*I want to\s+"
    r"\[?(View all|view|add|update|delete)\]?\s+(a|an|all)\s+\[?\w+(?: \w+)*\]?$",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")

FORMAT_HELP = (
    "Invalid format. Examples of correct formats:\n"
    '- "As a User, I want to add a task"\n'
    '- "A Manager wants to view all reports"'
)


def _normalise(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip())


def is_valid_story_format(text: str) -> bool:
    if not isinstance(text, str) or not text.strip():
        return False
    normalised = _normalise(text)
    return bool(_WANTS_TO.match(normalised) or _I_WANT_TO.match(normalised))


def extract_role(text: str) -> str | None:
    normalised = _normalise(text)
    match = _WANTS_TO.match(normalised) or _I_WANT_TO.match(normalised)
    if match is None:
        return None
    return match.group("role")


@dataclass
class UserStory:
    name: str
    storyText: str
    storyNumber: str = ""
    isIgnored: str = "false"
    isStoryProcessed: str = "false"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UserStoryStore:
    """In-memory story table. Mutations are serialised with an ``asyncio.Lock``."""

    def __init__(self) -> None:
        self._stories: list[UserStory] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._stories)

    async def add(self, story_text: str, *, story_number: str = "") -> UserStory | None:
        """Append a story; returns ``None`` when identical text already exists."""

        async with self._lock:
            if any(story.storyText == story_text for story in self._stories):
                return None
            story = UserStory(
                name=str(uuid.uuid4()), storyText=story_text, storyNumber=story_number
            )
            self._stories.append(story)
            return story

    async def set_ignored(self, name: str, ignored: bool) -> UserStory | None:
        async with self._lock:
            for story in self._stories:
                if story.name == name:
                    story.isIgnored = "true" if ignored else "false"
                    return story
        return None

    def snapshot(self) -> list[UserStory]:
        return [UserStory(**story.to_dict()) for story in self._stories]


_STORY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": "A user story describing what a role wants to do with a data object",
    "properties": {
        "name": {"type": "string", "description": "Unique identifier (GUID) of the story"},
        "storyNumber": {"type": "string", "description": "Optional story number or title"},
        "storyText": {
            "type": "string",
            "description": 'Story text, e.g. "A Manager wants to view all reports"',
        },
        "isIgnored": {
            "type": "string",
            "enum": ["true", "false"],
            "description": "Soft-delete flag",
        },
        "isStoryProcessed": {
            "type": "string",
            "enum": ["true", "false"],
            "description": "Whether the story has been processed into model artefacts",
        },
    },
    "required": ["name", "storyText"],
}


def register_user_story_tools(registry: ToolRegistry, store: UserStoryStore) -> None:
    async def create_user_story(arguments: dict[str, Any]) -> dict[str, Any]:
        story_text = arguments["storyText"]
        if not is_valid_story_format(story_text):
            return {"success": False, "error": FORMAT_HELP, "validatedFormat": False}
        story = await store.add(
            _normalise(story_text), story_number=arguments.get("storyNumber", "")
        )
        if story is None:
            return {"success": False, "error": "A user story with this text already exists"}
        return {
            "success": True,
            "story": story.to_dict(),
            "validatedFormat": True,
            "note": "Story created in memory",
        }

    async def list_user_stories(arguments: dict[str, Any]) -> dict[str, Any]:
        role = arguments.get("role")
        search = arguments.get("search_story_text")
        include_ignored = bool(arguments.get("includeIgnored", False))
        stories = store.snapshot()
        if not include_ignored:
            stories = [story for story in stories if story.isIgnored != "true"]
        if role:
            wanted = role.strip().lower()
            stories = [
                story
                for story in stories
                if (extract_role(story.storyText) or "").lower() == wanted
            ]
        if search:
            needle = search.lower()
            stories = [story for story in stories if needle in story.storyText.lower()]
        return {
            "success": True,
            "stories": [story.to_dict() for story in stories],
            "count": len(stories),
            "filters": {
                "role": role,
                "search_story_text": search,
                "includeIgnored": include_ignored,
            },
        }

    async def update_user_story(arguments: dict[str, Any]) -> dict[str, Any]:
        name = arguments["name"]
        story = await store.set_ignored(name, arguments["isIgnored"] == "true")
        if story is None:
            return {"success": False, "error": f"User story not found: {name}"}
        return {"success": True, "story": story.to_dict(), "message": "User story updated"}

    def get_user_story_schema(arguments: dict[str, Any]) -> dict[str, Any]:
        return {
            "success": True,
            "schema": {
                **_STORY_SCHEMA,
                "example": {
                    "name": "00000000-0000-4000-8000-000000000000",
                    "storyNumber": "US-1",
                    "storyText": "A Manager wants to view all reports",
                    "isIgnored": "false",
                    "isStoryProcessed": "false",
                },
            },
        }

    registry.register(
        ToolDefinition(
            name="create_user_story",
            title="Create User Story",
            description=(
                "Create a new user story with format validation. The story text must follow "
                '"A [Role] wants to [action] [object]" or '
                '"As a [Role], I want to [action] [object]".'
            ),
            handler=create_user_story,
            input_schema={
                "type": "object",
                "properties": {
                    "storyText": {"type": "string", "minLength": 1},
                    "storyNumber": {"type": "string"},
                },
                "required": ["storyText"],
                "additionalProperties": False,
            },
        )
    )
    registry.register(
        ToolDefinition(
            name="list_user_stories",
            title="List User Stories",
            description=(
                "List user stories, optionally filtered by role, story text and ignored status. "
                "Without filters, returns all non-ignored stories."
            ),
            handler=list_user_stories,
            input_schema={
                "type": "object",
                "properties": {
                    "role": {"type": "string"},
                    "search_story_text": {"type": "string"},
                    "includeIgnored": {"type": "boolean"},
                },
                "additionalProperties": False,
            },
        )
    )
    registry.register(
        ToolDefinition(
            name="update_user_story",
            title="Update User Story",
            description=(
                "Set the isIgnored flag of an existing user story (soft delete or re-enable)."
            ),
            handler=update_user_story,
            input_schema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "isIgnored": {"type": "string", "enum": ["true", "false"]},
                },
                "required": ["name", "isIgnored"],
                "additionalProperties": False,
            },
        )
    )
    registry.register(
        ToolDefinition(
            name="get_user_story_schema",
            title="Get User Story Schema",
            description="Get the schema definition for user story objects, with an example.",
            handler=get_user_story_schema,
        )
    )
