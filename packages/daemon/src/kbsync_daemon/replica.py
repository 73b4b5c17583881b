"""Read-only replica of the owner's knowledge bases.

The replica only accepts snapshots while a session is active. Each accepted
snapshot replaces the whole map; readers holding the previous map keep a
consistent view because the map object itself is never mutated.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from kbsync_common import KBSyncError, get_logger
from kbsync_common.jsonrpc import PeerChannel
from kbsync_contracts import KnowledgeBaseMetadata, KnowledgeBaseParams, SyncAck, SyncEntry

from kbsync_daemon.metrics import REPLICA_BASES, REPLICA_LAST_SYNC, SESSION_ACTIVE, SYNC_PAYLOADS

logger = get_logger(__name__)


class StoreReplica:
    """Server-side copy of the synced bases plus session state."""

    def __init__(self, peer: Optional[PeerChannel] = None) -> None:
        """Initialize an empty, inactive replica.

        Args:
            peer: Channel to the owner process. Without one, start/stop only
                toggle local state.
        """
        self._peer = peer
        self._bases: dict[str, SyncEntry] = {}
        self._active = False
        self._last_synced_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self) -> None:
        """Activate the session and ask the owner for a snapshot.

        When already active the snapshot is requested again, which covers an
        owner that restarted mid-session.
        """
        if self._active:
            logger.debug("session_already_active_requesting_refresh")
            await self._notify_peer("request_sync")
            return

        logger.info("session_starting")
        self._active = True
        SESSION_ACTIVE.set(1)
        await self._notify_peer("request_sync")

    async def stop_session(self, notify_peer: bool = True) -> None:
        """Deactivate the session and drop every synced base.

        Clearing happens even when no session was active. The owner is told to
        stop pushing only when a session was actually running.

        Args:
            notify_peer: False when the owner itself reported the stop
        """
        was_active = self._active
        self._active = False
        self._bases = {}
        self._last_synced_at = None

        SESSION_ACTIVE.set(0)
        REPLICA_BASES.set(0)
        REPLICA_LAST_SYNC.set(0)

        if was_active:
            logger.info("session_stopped")
            if notify_peer:
                await self._notify_peer("stop_sync")

    def accept_sync(self, entries: Sequence[SyncEntry]) -> SyncAck:
        """Replace the replica with a pushed snapshot.

        Returns:
            SyncAck with accepted=False (and no state change) while inactive
        """
        if not self._active:
            logger.debug("sync_payload_ignored_inactive", entry_count=len(entries))
            SYNC_PAYLOADS.labels(outcome="rejected").inc()
            return SyncAck(accepted=False)

        bases = {entry.metadata.id: entry for entry in entries}
        synced_at = datetime.now(timezone.utc)

        self._bases = bases
        self._last_synced_at = synced_at

        SYNC_PAYLOADS.labels(outcome="accepted").inc()
        REPLICA_BASES.set(len(bases))
        REPLICA_LAST_SYNC.set(synced_at.timestamp())
        logger.info("replica_updated", base_count=len(bases))

        return SyncAck(accepted=True, synced_at=synced_at)

    async def _notify_peer(self, method: str) -> None:
        if self._peer is None:
            return
        try:
            await self._peer.call(method)
        except KBSyncError as e:
            logger.warning("owner_unreachable", method=method, error=str(e))

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_bases(self) -> list[KnowledgeBaseMetadata]:
        return [entry.metadata for entry in self._bases.values()]

    def get_base(self, base_id: str) -> Optional[SyncEntry]:
        return self._bases.get(base_id)

    def get_base_params(self, base_id: str) -> Optional[KnowledgeBaseParams]:
        entry = self._bases.get(base_id)
        return entry.params if entry else None

    def has_bases(self) -> bool:
        return len(self._bases) > 0

    def is_session_active(self) -> bool:
        return self._active

    def last_synced_at(self) -> Optional[datetime]:
        return self._last_synced_at

    def is_ready(self) -> bool:
        """True when searches can be served."""
        return self._active and self.has_bases()
