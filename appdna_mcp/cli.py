from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path

from appdna_mcp.config import LOG_LEVELS, ServerSettings
from appdna_mcp.http.server import serve_http
from appdna_mcp.logging import InvocationLogWriter
from appdna_mcp.service.dispatcher import Dispatcher
from appdna_mcp.service.errors import PortUnavailableError
from appdna_mcp.stdio import StdioTransport, open_stdio_streams
from appdna_mcp.tools import build_default_registry

LOGGER = logging.getLogger("appdna_mcp.cli")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the AppDNA MCP server")
    parser.add_argument("--http", action="store_true", help="Enable HTTP/SSE transport")
    parser.add_argument("--stdio", action="store_true", help="Enable STDIO JSON-RPC transport")
    parser.add_argument("--host", default=None, help="HTTP host (default 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="First HTTP port to try")
    parser.add_argument(
        "--port-attempts",
        type=int,
        default=None,
        help="How many consecutive ports to try before giving up",
    )
    parser.add_argument(
        "--keepalive",
        type=float,
        default=None,
        help="Seconds between SSE keep-alive comments",
    )
    parser.add_argument(
        "--shutdown-grace",
        type=int,
        default=None,
        help="Grace period in seconds for HTTP shutdown",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=[*LOG_LEVELS, "WARN"],
        default=None,
        help="Logging level",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for the tool invocation audit log",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    args = create_parser().parse_args(argv)
    if not args.http and not args.stdio:
        args.http = True
    return args


def resolve_settings(
    args: argparse.Namespace, environ: dict[str, str] | None = None
) -> ServerSettings:
    return ServerSettings.from_env(environ).with_overrides(
        host=args.host,
        port=args.port,
        port_attempts=args.port_attempts,
        keepalive_interval=args.keepalive,
        shutdown_grace=args.shutdown_grace,
        log_level=args.log_level,
        log_dir=args.log_dir,
    )


async def _serve_http_alongside_stdio(dispatcher: Dispatcher, settings: ServerSettings) -> None:
    try:
        await serve_http(dispatcher, settings)
    except PortUnavailableError as exc:
        LOGGER.error("HTTP transport disabled: %s", exc)


async def _run_server(args: argparse.Namespace, settings: ServerSettings) -> int:
    invocation_log = None
    if settings.log_dir is not None:
        invocation_log = InvocationLogWriter.in_directory(
            settings.log_dir, retention=settings.log_retention
        )
    dispatcher = Dispatcher(
        build_default_registry(),
        server_info=settings.server_info(),
        invocation_log=invocation_log,
    )
    try:
        if not args.stdio:
            try:
                await serve_http(dispatcher, settings)
            except PortUnavailableError as exc:
                LOGGER.error("%s", exc)
                return 1
            return 0

        http_task: asyncio.Task[None] | None = None
        if args.http:
            http_task = asyncio.create_task(_serve_http_alongside_stdio(dispatcher, settings))
        try:
            reader, writer = await open_stdio_streams()
            await StdioTransport(dispatcher, reader, writer).serve()
        finally:
            if http_task is not None and not http_task.done():
                http_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await http_task
        return 0
    finally:
        if invocation_log is not None:
            invocation_log.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        print(f"appdna-mcp: {exc}", file=sys.stderr)
        return 2
    # stdout carries the stdio protocol; diagnostics go to stderr only.
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format=_LOG_FORMAT, stream=sys.stderr
    )
    try:
        return asyncio.run(_run_server(args, settings))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
