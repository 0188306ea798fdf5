"""Runtime settings for the MCP server."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from appdna_mcp import __version__
from appdna_mcp.service.dispatcher import DEFAULT_SERVER_NAME, ServerInfo

__all__ = ["ENV_PREFIX", "LOG_LEVELS", "ServerSettings"]

ENV_PREFIX = "APPDNA_MCP_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_LEVEL_ALIASES = {"WARN": "WARNING"}


@dataclass(frozen=True)
class ServerSettings:
    """Validated server configuration; CLI flags override environment values."""

    host: str = "127.0.0.1"
    port: int = 3000
    port_attempts: int = 10
    keepalive_interval: float = 30.0
    shutdown_grace: int = 10
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_retention: int = 5
    server_name: str = DEFAULT_SERVER_NAME
    server_version: str = __version__

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must be a non-empty string")
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.port_attempts < 1:
            raise ValueError("port_attempts must be a positive integer")
        if self.keepalive_interval <= 0:
            raise ValueError("keepalive_interval must be positive")
        if self.shutdown_grace < 0:
            raise ValueError("shutdown_grace must not be negative")
        if self.log_retention < 1:
            raise ValueError("log_retention must be a positive integer")
        level = str(self.log_level).upper()
        level = _LEVEL_ALIASES.get(level, level)
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        object.__setattr__(self, "log_level", level)
        if self.log_dir is not None and not isinstance(self.log_dir, Path):
            object.__setattr__(self, "log_dir", Path(self.log_dir))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerSettings:
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for suffix, field_name, convert in _ENV_FIELDS:
            raw = env.get(f"{ENV_PREFIX}{suffix}")
            if raw is None or raw.strip() == "":
                continue
            try:
                values[field_name] = convert(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{suffix}: invalid value {raw!r}") from exc
        for field_name, value in values.items():
            try:
                cls(**{field_name: value})
            except ValueError as exc:
                raise ValueError(f"{_ENV_NAMES[field_name]}: {exc}") from exc
        return cls(**values)

    def with_overrides(self, **changes: Any) -> ServerSettings:
        """Return a copy with every non-``None`` value in ``changes`` applied."""

        return dataclasses.replace(
            self, **{key: value for key, value in changes.items() if value is not None}
        )

    def server_info(self) -> ServerInfo:
        return ServerInfo(name=self.server_name, version=self.server_version)


_ENV_FIELDS: tuple[tuple[str, str, Callable[[str], Any]], ...] = (
    ("HOST", "host", str),
    ("PORT", "port", int),
    ("PORT_ATTEMPTS", "port_attempts", int),
    ("KEEPALIVE", "keepalive_interval", float),
    ("LOG_LEVEL", "log_level", str),
    ("LOG_DIR", "log_dir", Path),
)
_ENV_NAMES = {field_name: f"{ENV_PREFIX}{suffix}" for suffix, field_name, _ in _ENV_FIELDS}
