"""Unix socket server with JSON-RPC 2.0 protocol.

Serves the owner's snapshot pushes and search/listing queries.

Usage:
    kbsync-daemon [--socket /tmp/kbsync_daemon_user.sock]

Protocol:
    JSON-RPC 2.0 over Unix domain socket, one request per connection.

    Request:
        {"jsonrpc": "2.0", "method": "search", "params": {"query": "IV", "knowledge_base_ids": ["kb-1"]}, "id": 1}

    Response:
        {"jsonrpc": "2.0", "result": {"object": "list", "data": [...]}, "id": 1}

    Error:
        {"jsonrpc": "2.0", "error": {"code": -32001, "message": "..."}, "id": 1}
"""

import argparse
import asyncio
import os
import signal
import sys
from functools import partial
from typing import Optional

from prometheus_client import start_http_server as start_prometheus_server

from kbsync_common import Settings, configure_logging, get_logger, get_settings
from kbsync_common.jsonrpc import INTERNAL_ERROR, make_error, process_request, read_message

from kbsync_daemon.context import DaemonContext, build_context
from kbsync_daemon.handler import dispatch
from kbsync_daemon.metrics import ACTIVE_CONNECTIONS

logger = get_logger(__name__)

DEFAULT_CONNECTION_TIMEOUT = 10.0

# Connection tracking
_connection_semaphore: Optional[asyncio.Semaphore] = None
_active_connections = 0


async def handle_request(data: bytes, ctx: DaemonContext) -> bytes:
    """Handle a single JSON-RPC request.

    Args:
        data: Raw request bytes
        ctx: Daemon context passed to the method handler

    Returns:
        Response bytes
    """
    return await process_request(data, partial(dispatch, ctx))


async def handle_client(
    ctx: DaemonContext,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    timeout: float = DEFAULT_CONNECTION_TIMEOUT,
) -> None:
    """Handle a client connection.

    Uses a semaphore to limit concurrent connections and prevent resource exhaustion.

    Args:
        ctx: Daemon context
        reader: Stream reader
        writer: Stream writer
        timeout: Seconds allowed for the client to send its request
    """
    global _active_connections

    # Try to acquire semaphore (with timeout to prevent deadlock)
    try:
        await asyncio.wait_for(_connection_semaphore.acquire(), timeout=1.0)
    except asyncio.TimeoutError:
        logger.warning("connection_rejected", reason="max_connections_reached", active=_active_connections)
        writer.write(make_error(INTERNAL_ERROR, "Server busy, try again later"))
        await writer.drain()
        writer.close()
        await writer.wait_closed()
        return

    _active_connections += 1
    ACTIVE_CONNECTIONS.set(_active_connections)
    logger.debug("connection_opened", active=_active_connections)

    try:
        # Client closes its write end after sending the request
        data = await asyncio.wait_for(read_message(reader), timeout=timeout)

        if not data:
            return

        response = await handle_request(data, ctx)

        writer.write(response)
        await writer.drain()

    except asyncio.TimeoutError:
        logger.warning("client_timeout", timeout=timeout)
        writer.write(make_error(INTERNAL_ERROR, f"Request timeout ({timeout}s)"))
        await writer.drain()

    except Exception as e:
        logger.exception("client_error", error=str(e))

    finally:
        _active_connections -= 1
        ACTIVE_CONNECTIONS.set(_active_connections)
        _connection_semaphore.release()
        logger.debug("connection_closed", active=_active_connections)
        writer.close()
        await writer.wait_closed()


async def run_server(settings: Settings, socket_path: Optional[str] = None) -> None:
    """Run the Unix socket server until a shutdown signal arrives.

    Args:
        settings: Daemon settings
        socket_path: Overrides settings.daemon_socket_path
    """
    global _connection_semaphore

    socket_path = socket_path or settings.daemon_socket_path
    _connection_semaphore = asyncio.Semaphore(settings.max_connections)
    logger.info(
        "connection_limits_configured",
        max_connections=settings.max_connections,
        timeout=settings.request_timeout,
    )

    try:
        start_prometheus_server(settings.metrics_port)
        logger.info("prometheus_metrics_started", port=settings.metrics_port)
    except OSError as e:
        # Port already in use; metrics are optional
        logger.warning("prometheus_metrics_port_busy", port=settings.metrics_port, error=str(e))

    if os.path.exists(socket_path):
        os.remove(socket_path)

    ctx = build_context(settings)

    server = await asyncio.start_unix_server(
        partial(handle_client, ctx, timeout=settings.request_timeout), path=socket_path
    )

    # Set socket permissions (user-only for security)
    os.chmod(socket_path, 0o600)

    logger.info("daemon_started", socket=socket_path)
    print(f"kb-sync daemon listening on {socket_path}", file=sys.stderr)

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        async with server:
            # Ask the owner for a snapshot; it pushes back over our socket
            await ctx.replica.start_session()

            await shutdown_event.wait()

            # Tell the owner to stop pushing before the socket goes away
            await ctx.replica.stop_session()

    finally:
        logger.info("daemon_stopping")

        if os.path.exists(socket_path):
            os.remove(socket_path)

        logger.info("daemon_stopped")


def main() -> None:
    """Entry point for kbsync-daemon command."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="kb-sync daemon - knowledge base replica and search service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Protocol:
    JSON-RPC 2.0 over Unix domain socket.

Methods:
    list_bases()
        Synced knowledge bases.

    search(query, knowledge_base_ids, rewrite?, threshold?, top_k?)
        Search one or more synced bases.

    health()
        Session and replica status.

Example:
    echo '{"jsonrpc":"2.0","method":"health","id":1}' | nc -U /tmp/kbsync_daemon_$USER.sock
        """,
    )

    parser.add_argument(
        "--socket",
        default=settings.daemon_socket_path,
        help=f"Unix socket path (default: {settings.daemon_socket_path})",
    )
    parser.add_argument("--log-level", default=settings.log_level)

    args = parser.parse_args()
    configure_logging(args.log_level, settings.log_format)

    try:
        asyncio.run(run_server(settings, socket_path=args.socket))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
