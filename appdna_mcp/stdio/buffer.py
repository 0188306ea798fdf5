"""Reassemble newline-delimited messages from arbitrarily chunked reads."""

from __future__ import annotations

__all__ = ["LineBuffer"]


class LineBuffer:
    """Byte-level line accumulator.

    Works on bytes rather than text so a multi-byte UTF-8 character split across two
    reads is only decoded once the whole line is present.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append ``chunk`` and return every line it completed, in order."""

        if not chunk:
            return []
        self._pending.extend(chunk)
        lines: list[bytes] = []
        start = 0
        while True:
            index = self._pending.find(b"\n", start)
            if index < 0:
                break
            line = _clean(bytes(self._pending[start:index]))
            if line is not None:
                lines.append(line)
            start = index + 1
        if start:
            del self._pending[:start]
        return lines

    def flush(self) -> bytes | None:
        """Return the unterminated tail (if any) and reset the buffer."""

        tail = _clean(bytes(self._pending))
        self._pending.clear()
        return tail


def _clean(line: bytes) -> bytes | None:
    if line.endswith(b"\r"):
        line = line[:-1]
    if not line.strip():
        return None
    return line
