"""Sync session controller (owner side).

Two states, Inactive and Active. While Active the controller observes the
owner store and pushes a full snapshot to the daemon whenever the fingerprint
of the selected bases changes.

Pushes are fire-and-forget tasks, but delivery is serialized: each push holds
the push lock while it builds the snapshot and waits for the daemon's ack, so
the last push delivered always carries the newest state.
"""

import asyncio
from typing import Callable, Optional

from kbsync_common import KBSyncError, get_logger
from kbsync_common.jsonrpc import PeerChannel
from kbsync_contracts import SyncAck

from kbsync_owner.snapshot import build_snapshot, compute_fingerprint
from kbsync_owner.store import OwnerState, OwnerStore

logger = get_logger(__name__)


class SyncSessionController:
    """Drives snapshot pushes for one owner process."""

    def __init__(self, store: OwnerStore, peer: PeerChannel) -> None:
        """Initialize controller.

        Args:
            store: Owner state to observe
            peer: Channel to the daemon
        """
        self._store = store
        self._peer = peer
        self._active = False
        self._fingerprint: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: set[asyncio.Task] = set()
        self._push_lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def fingerprint(self) -> Optional[str]:
        """Fingerprint of the last pushed selection (None when unset)."""
        return self._fingerprint

    def start(self) -> None:
        """Start the session, or push a refresh if already active.

        Must be called from a running event loop.
        """
        if self._active:
            logger.debug("sync_refresh_requested")
            self._schedule_push("refresh")
            return

        logger.info("sync_session_starting")
        self._active = True
        self._unsubscribe = self._store.subscribe(self._on_state_change)
        # Baseline for change detection is the selection sent by the initial push
        self._fingerprint = compute_fingerprint(self._store.get_state())
        self._schedule_push("initial")

    async def stop(self, notify_peer: bool = True) -> None:
        """Stop the session and tell the daemon it has stopped.

        Args:
            notify_peer: False when the stop was requested by the daemon itself
        """
        if not self._active:
            return

        logger.info("sync_session_stopping")
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._fingerprint = None
        self._active = False

        if notify_peer:
            try:
                await self._peer.call("sync_stopped")
            except KBSyncError as e:
                logger.warning("sync_stop_signal_failed", error=str(e))

    async def drain(self) -> None:
        """Wait for every in-flight push to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_state_change(self, state: OwnerState) -> None:
        if not self._active:
            return

        fingerprint = compute_fingerprint(state)
        if fingerprint == self._fingerprint:
            return

        self._fingerprint = fingerprint
        self._schedule_push("update")

    def _schedule_push(self, reason: str) -> None:
        task = asyncio.get_running_loop().create_task(self._push(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(self, reason: str) -> None:
        # One push on the wire at a time; the snapshot is taken after the
        # previous ack so it reflects every mutation made while waiting
        async with self._push_lock:
            if not self._active:
                return

            try:
                entries = build_snapshot(self._store.get_state())
                logger.debug("sync_push", base_count=len(entries), reason=reason)

                result = await self._peer.call(
                    "sync_bases",
                    {"entries": [entry.model_dump(mode="json") for entry in entries]},
                )
                ack = SyncAck.model_validate(result or {"accepted": False})
                if not ack.accepted:
                    logger.debug("sync_push_rejected", reason=reason)

            except Exception as e:
                logger.error("sync_push_failed", reason=reason, error=str(e))
