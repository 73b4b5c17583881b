"""JSON-RPC method handlers for the daemon.

Implements:
- sync_bases: Owner pushes a full snapshot
- sync_stopped: Owner reports that its session has stopped
- start_session / stop_session: Session control
- list_bases: Synced knowledge base metadata
- search: Threshold-filtered, optionally reranked search
- health: Daemon and replica status
"""

import time
from typing import Any, Optional

from kbsync_common import get_logger
from kbsync_contracts import SearchRequest, SyncEntry

from kbsync_daemon.context import DaemonContext
from kbsync_daemon.metrics import REQUEST_COUNT, REQUEST_DURATION

logger = get_logger(__name__)


async def handle_sync_bases(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    """Handle sync_bases method.

    Args:
        params: Sync parameters
            - entries (list): Full snapshot of SyncEntry objects (required)

    Returns:
        {"accepted": bool, "syncedAt"?: ISO timestamp}

    Raises:
        ValueError: If entries missing
    """
    raw_entries = params.get("entries")
    if raw_entries is None or not isinstance(raw_entries, list):
        raise ValueError("Missing required parameter: entries")

    entries = [SyncEntry.model_validate(raw) for raw in raw_entries]
    ack = ctx.replica.accept_sync(entries)
    return ack.model_dump(mode="json", by_alias=True, exclude_none=True)


async def handle_sync_stopped(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    await ctx.replica.stop_session(notify_peer=False)
    return {"active": False}


async def handle_start_session(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    await ctx.replica.start_session()
    return {"active": ctx.replica.is_session_active()}


async def handle_stop_session(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    await ctx.replica.stop_session()
    return {"active": ctx.replica.is_session_active()}


async def handle_list_bases(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    response = ctx.orchestrator.list_bases()
    return response.model_dump(mode="json", by_alias=True, exclude_none=True)


async def handle_search(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    """Handle search method.

    Args:
        params: Search parameters
            - query (str): Search query text (required)
            - knowledge_base_ids (list[str]): Bases to search (required)
            - rewrite (str): Rewritten query used instead of query
            - threshold (float): Score threshold override (0-1)
            - top_k (int): Result count override per base

    Returns:
        {"object": "list", "data": [...]}
    """
    request = SearchRequest.model_validate(params)

    logger.info(
        "search_request",
        query=request.query[:50],
        base_count=len(request.knowledge_base_ids),
        top_k=request.top_k,
        threshold=request.threshold,
    )

    response = await ctx.orchestrator.search(request)
    return response.model_dump(mode="json")


async def handle_health(ctx: DaemonContext, params: dict[str, Any]) -> dict[str, Any]:
    """Handle health method.

    Returns:
        Session and replica status
    """
    replica = ctx.replica
    last_synced_at = replica.last_synced_at()

    if replica.is_ready():
        status = "ready"
    elif replica.is_session_active():
        status = "waiting_for_sync"
    else:
        status = "inactive"

    return {
        "status": status,
        "uptime_seconds": round(ctx.uptime_seconds, 1),
        "session_active": replica.is_session_active(),
        "base_count": len(replica.get_bases()),
        "last_synced_at": last_synced_at.isoformat() if last_synced_at else None,
    }


# Method registry
METHODS = {
    "sync_bases": handle_sync_bases,
    "sync_stopped": handle_sync_stopped,
    "start_session": handle_start_session,
    "stop_session": handle_stop_session,
    "list_bases": handle_list_bases,
    "search": handle_search,
    "health": handle_health,
}


async def dispatch(
    ctx: DaemonContext, method: str, params: Optional[dict[str, Any]] = None
) -> Any:
    """Dispatch JSON-RPC method call.

    Args:
        ctx: Daemon context
        method: Method name
        params: Method parameters

    Returns:
        Method result

    Raises:
        ValueError: If method not found
    """
    handler = METHODS.get(method)
    if handler is None:
        raise ValueError(f"Method not found: {method}")

    start = time.perf_counter()
    status = "error"
    try:
        result = await handler(ctx, params or {})
        status = "ok"
        return result
    finally:
        REQUEST_DURATION.labels(method=method, status=status).observe(time.perf_counter() - start)
        REQUEST_COUNT.labels(method=method, status=status).inc()
