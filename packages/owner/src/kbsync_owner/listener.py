"""JSON-RPC methods the daemon calls on the owner process.

Implements:
- request_sync: Start a sync session, or push a refresh if one is active
- stop_sync: Stop the session (the daemon already knows, so no echo)
- status: Session state for diagnostics
"""

import asyncio
from functools import partial
from typing import Any, Optional

from kbsync_common import get_logger
from kbsync_common.jsonrpc import INTERNAL_ERROR, make_error, process_request, read_message

from kbsync_owner.controller import SyncSessionController

logger = get_logger(__name__)

DEFAULT_CONNECTION_TIMEOUT = 10.0


async def handle_request_sync(
    controller: SyncSessionController, params: dict[str, Any]
) -> dict[str, Any]:
    logger.info("sync_requested_by_daemon")
    controller.start()
    return {"active": controller.is_active}


async def handle_stop_sync(
    controller: SyncSessionController, params: dict[str, Any]
) -> dict[str, Any]:
    logger.info("sync_stop_requested_by_daemon")
    await controller.stop(notify_peer=False)
    return {"active": controller.is_active}


async def handle_status(
    controller: SyncSessionController, params: dict[str, Any]
) -> dict[str, Any]:
    return {"active": controller.is_active, "fingerprint": controller.fingerprint}


# Method registry
METHODS = {
    "request_sync": handle_request_sync,
    "stop_sync": handle_stop_sync,
    "status": handle_status,
}


async def dispatch(
    controller: SyncSessionController,
    method: str,
    params: Optional[dict[str, Any]] = None,
) -> Any:
    """Dispatch JSON-RPC method call.

    Raises:
        ValueError: If method not found
    """
    handler = METHODS.get(method)
    if handler is None:
        raise ValueError(f"Method not found: {method}")

    return await handler(controller, params or {})


async def handle_request(data: bytes, controller: SyncSessionController) -> bytes:
    return await process_request(data, partial(dispatch, controller))


async def handle_client(
    controller: SyncSessionController,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    timeout: float = DEFAULT_CONNECTION_TIMEOUT,
) -> None:
    """Serve one request on one connection."""
    try:
        data = await asyncio.wait_for(read_message(reader), timeout=timeout)
        if not data:
            return

        writer.write(await handle_request(data, controller))
        await writer.drain()

    except asyncio.TimeoutError:
        logger.warning("client_timeout", timeout=timeout)
        writer.write(make_error(INTERNAL_ERROR, f"Request timeout ({timeout}s)"))
        await writer.drain()

    except Exception as e:
        logger.exception("client_error", error=str(e))

    finally:
        writer.close()
        await writer.wait_closed()
