"""Owner process entry point.

Usage:
    kbsync-owner --bases bases.json [--socket /tmp/kbsync_owner_user.sock]

Loads knowledge bases from a JSON file, serves the owner socket and asks the
daemon to start a session. SIGHUP reloads the file; SIGINT/SIGTERM stop the
session and exit.
"""

import argparse
import asyncio
import os
import signal
import sys
from functools import partial
from pathlib import Path

from kbsync_common import KBSyncError, configure_logging, get_logger, get_settings
from kbsync_common.jsonrpc import JsonRpcClient

from kbsync_owner.controller import SyncSessionController
from kbsync_owner.listener import handle_client
from kbsync_owner.store import OwnerStore

logger = get_logger(__name__)


def _reload(store: OwnerStore, bases_path: Path) -> None:
    try:
        store.reload(bases_path)
    except (OSError, ValueError) as e:
        # Keep serving the previous state
        logger.error("owner_state_reload_failed", path=str(bases_path), error=str(e))


async def run_owner(
    bases_path: Path,
    socket_path: str,
    daemon_socket_path: str,
    timeout: float = 10.0,
) -> None:
    """Run the owner process until a shutdown signal arrives.

    Args:
        bases_path: JSON file with bases and allow-list
        socket_path: Owner Unix socket path
        daemon_socket_path: Daemon Unix socket path
        timeout: Peer call and connection read timeout in seconds
    """
    store = OwnerStore.from_file(bases_path)
    peer = JsonRpcClient(daemon_socket_path, timeout=timeout)
    controller = SyncSessionController(store, peer)

    if os.path.exists(socket_path):
        os.remove(socket_path)

    server = await asyncio.start_unix_server(
        partial(handle_client, controller, timeout=timeout), path=socket_path
    )
    os.chmod(socket_path, 0o600)

    logger.info("owner_started", socket=socket_path, base_count=len(store.get_state().bases))
    print(f"kb-sync owner listening on {socket_path}", file=sys.stderr)

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)
    loop.add_signal_handler(signal.SIGHUP, _reload, store, bases_path)

    try:
        async with server:
            # The daemon answers by calling request_sync on our socket
            try:
                await peer.call("start_session")
            except KBSyncError as e:
                logger.warning("daemon_unavailable", socket=daemon_socket_path, error=str(e))

            await shutdown_event.wait()

            await controller.stop()
            await controller.drain()

    finally:
        logger.info("owner_stopping")
        if os.path.exists(socket_path):
            os.remove(socket_path)
        logger.info("owner_stopped")


def main() -> None:
    """Entry point for kbsync-owner command."""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="kb-sync owner process")
    parser.add_argument("--bases", required=True, type=Path, help="JSON file with knowledge bases")
    parser.add_argument(
        "--socket",
        default=settings.owner_socket_path,
        help=f"Owner socket path (default: {settings.owner_socket_path})",
    )
    parser.add_argument(
        "--daemon-socket",
        default=settings.daemon_socket_path,
        help=f"Daemon socket path (default: {settings.daemon_socket_path})",
    )
    parser.add_argument("--log-level", default=settings.log_level)

    args = parser.parse_args()
    configure_logging(args.log_level, settings.log_format)

    try:
        asyncio.run(
            run_owner(args.bases, args.socket, args.daemon_socket, timeout=settings.request_timeout)
        )
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
