from __future__ import annotations

import asyncio
import logging
import sys
from typing import IO, Any, Protocol

from appdna_mcp.models import JsonRpcNotification, JsonRpcResponse
from appdna_mcp.service.codec import encode, error_response
from appdna_mcp.service.dispatcher import ConnectionState, Dispatcher
from appdna_mcp.service.errors import InternalError, JsonRpcErrorCode

from .buffer import LineBuffer

__all__ = ["StdioTransport", "open_stdio_streams"]

LOGGER = logging.getLogger(__name__)


class _Reader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class _Writer(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class StdioTransport:
    """Newline-delimited JSON-RPC over a pair of byte streams.

    Each complete line is dispatched on its own task so a slow tool never blocks the
    requests behind it. Responses are written whole, one at a time, under a single lock.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        reader: _Reader,
        writer: _Writer,
        *,
        chunk_size: int = 65536,
        announce_ready: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._dispatcher = dispatcher
        self._reader = reader
        self._writer = writer
        self._chunk_size = chunk_size
        self._announce_ready = announce_ready
        self._logger = logger or LOGGER
        self._write_lock = asyncio.Lock()
        self._inflight: set[asyncio.Task[None]] = set()
        self._read_task: asyncio.Task[None] | None = None
        self._connection: ConnectionState | None = None
        self._closed = False

    @property
    def connection(self) -> ConnectionState | None:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    async def attach(self) -> ConnectionState:
        if self._read_task is not None:
            raise RuntimeError("stdio transport is already attached")
        self._connection = self._dispatcher.new_connection("stdio")
        if self._announce_ready:
            await self._send(self._dispatcher.ready_notification())
        self._read_task = asyncio.create_task(self._read_loop(), name="appdna-mcp-stdio-reader")
        return self._connection

    async def wait_closed(self) -> None:
        """Wait for end of input and for every request already read to finish."""

        if self._read_task is None:
            return
        await asyncio.wait({self._read_task})
        while self._inflight:
            await asyncio.wait(set(self._inflight))

    async def detach(self) -> None:
        self._closed = True
        task = self._read_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        close = getattr(self._writer, "close", None)
        if callable(close):
            try:
                close()
            except OSError as exc:
                self._logger.debug("Ignoring error while closing stdout: %s", exc)

    async def serve(self) -> None:
        await self.attach()
        try:
            await self.wait_closed()
        finally:
            await self.detach()

    async def _read_loop(self) -> None:
        buffer = LineBuffer()
        while not self._closed:
            try:
                chunk = await self._reader.read(self._chunk_size)
            except OSError as exc:
                self._logger.warning("stdin read failed: %s", exc)
                break
            if not chunk:
                break
            for line in buffer.feed(chunk):
                self._spawn(line)
        tail = buffer.flush()
        if tail is not None and not self._closed:
            self._spawn(tail)
        self._logger.debug("stdin reached end of input")

    def _spawn(self, line: bytes) -> None:
        task = asyncio.create_task(self._handle_line(line))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _handle_line(self, line: bytes) -> None:
        connection = self._connection
        if connection is None:
            raise RuntimeError("transport not attached")
        try:
            response = await self._dispatcher.handle_raw(line, connection)
        except Exception:
            self._logger.exception("Unhandled error while dispatching stdio message")
            response = error_response(InternalError())
        if response is None:
            return
        if _is_anonymous_parse_error(response) and not connection.initialized:
            self._logger.warning(
                "Dropping undecodable stdin input received before initialize (%d bytes)",
                len(line),
            )
            return
        await self._send(response)

    async def _send(self, message: JsonRpcResponse | JsonRpcNotification) -> None:
        if self._closed:
            self._logger.debug("stdout unavailable; dropping outbound message")
            return
        payload = encode(message) + b"\n"
        async with self._write_lock:
            if self._closed:
                return
            try:
                self._writer.write(payload)
                await self._writer.drain()
            except OSError as exc:
                self._degrade(exc)

    def _degrade(self, exc: OSError) -> None:
        self._logger.warning("stdout is no longer writable (%s); stdio transport stopped", exc)
        self._closed = True
        task = self._read_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


def _is_anonymous_parse_error(response: JsonRpcResponse) -> bool:
    return (
        response.error is not None
        and response.error.code == JsonRpcErrorCode.PARSE_ERROR
        and response.id is None
    )


async def open_stdio_streams(
    stdin: IO[Any] | None = None, stdout: IO[Any] | None = None
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process stdin/stdout pipes as asyncio streams."""

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), stdin or sys.stdin
    )
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, stdout or sys.stdout
    )
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer
