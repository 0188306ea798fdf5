"""Structured tool-invocation audit log for the MCP server."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4


@dataclass
class InvocationLogEvent:
    """In-memory representation of one ``tools/call`` outcome."""

    ts: datetime
    transport: str
    connection_id: str
    request_id: Any
    tool: str
    method: str
    status: str
    duration_ms: float
    arguments_bytes: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)
    error: Mapping[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialise the event to a JSON-compatible payload."""

        ts = self.ts
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        ts_value = ts.isoformat().replace("+00:00", "Z")

        return {
            "ts": ts_value,
            "transport": self.transport,
            "connection_id": self.connection_id,
            "request_id": self.request_id,
            "tool": self.tool,
            "method": self.method,
            "status": self.status,
            "duration_ms": float(self.duration_ms),
            "arguments_bytes": int(self.arguments_bytes),
            "metadata": dict(self.metadata or {}),
            "error": dict(self.error) if self.error is not None else None,
        }


class InvocationLogWriter:
    """Append invocation events to newline-delimited JSON.

    Handlers run concurrently (some on worker threads), so writes are serialised with a lock.
    Old ``*.jsonl`` files in the same directory are pruned beyond ``retention``.
    """

    def __init__(self, path: str | Path, *, retention: int = 5) -> None:
        self.path = Path(path)
        self._retention = max(retention, 1)
        self._lock = threading.Lock()
        self._run_id = uuid4().hex
        self._sequence = 0
        self._buffer: list[str] = []
        self._handle = None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._enforce_retention()

    @classmethod
    def in_directory(cls, directory: str | Path, *, retention: int = 5) -> InvocationLogWriter:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return cls(Path(directory) / f"tool_invocations-{stamp}.jsonl", retention=retention)

    @property
    def run_id(self) -> str:
        return self._run_id

    def write(self, event: InvocationLogEvent) -> None:
        """Append ``event``; a failed write keeps the line buffered for the next attempt."""

        payload = event.to_payload()
        with self._lock:
            payload["run_id"] = self._run_id
            payload["seq"] = self._sequence
            self._sequence += 1
            serialised = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
            self._buffer.append(f"{serialised}\n")
            self._ensure_handle()
            self._flush_buffer()

    def flush(self) -> None:
        with self._lock:
            self._ensure_handle()
            self._flush_buffer()

    def close(self) -> None:
        """Flush buffered events and close the underlying file handle."""

        with self._lock:
            self._ensure_handle()
            self._flush_buffer()
            if self._handle is not None:
                try:
                    self._handle.flush()
                finally:
                    self._handle.close()
                    self._handle = None

    def __enter__(self) -> "InvocationLogWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_handle(self) -> None:
        if self._handle is not None:
            return
        try:
            self._handle = self.path.open("a", encoding="utf-8")
        except OSError:
            self._handle = None

    def _flush_buffer(self) -> None:
        if not self._buffer or self._handle is None:
            return
        try:
            self._handle.writelines(self._buffer)
            self._handle.flush()
            self._buffer.clear()
        except OSError:
            # Keep the buffer and drop the handle so the next write reopens the file.
            try:
                self._handle.close()
            finally:  # pragma: no branch - close best-effort
                self._handle = None

    def _enforce_retention(self) -> None:
        directory = self.path.parent
        try:
            candidates = sorted(
                (p for p in directory.glob("*.jsonl") if p.is_file() and p != self.path),
                key=lambda entry: entry.stat().st_mtime,
            )
        except OSError:
            return

        # The file about to be created counts towards the budget.
        excess = len(candidates) + 1 - self._retention
        if excess <= 0:
            return

        for old_path in candidates[:excess]:
            try:
                old_path.unlink()
            except OSError:
                continue


__all__ = ["InvocationLogEvent", "InvocationLogWriter"]
