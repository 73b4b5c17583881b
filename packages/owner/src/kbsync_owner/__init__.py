"""kb-sync owner process.

Holds the authoritative knowledge base state and pushes snapshots of the
selected bases to the daemon while a sync session is active.
"""

from kbsync_owner.controller import SyncSessionController
from kbsync_owner.snapshot import build_snapshot, compute_fingerprint
from kbsync_owner.store import OwnerState, OwnerStore

__version__ = "0.1.0"

__all__ = [
    "OwnerState",
    "OwnerStore",
    "SyncSessionController",
    "build_snapshot",
    "compute_fingerprint",
]
