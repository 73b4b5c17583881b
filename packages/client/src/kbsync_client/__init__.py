"""kb-sync Python Client SDK.

Provides a typed interface to the daemon's listing and search methods.

Quick Start
-----------
>>> from kbsync_client import DaemonClient
>>> client = DaemonClient()
>>> if client.health().is_ready:
...     response = client.search("chunk overlap", ["kb-1"], top_k=3)
"""

from kbsync_common.errors import (
    ChannelError,
    ChannelTimeoutError,
    KBSyncError,
    NotFoundError,
    NotReadyError,
    UpstreamError,
)

from .models import HealthStatus
from .socket_client import DaemonClient, search_or_none

__all__ = [
    # Client
    "DaemonClient",
    # Models
    "HealthStatus",
    # Errors
    "KBSyncError",
    "ChannelError",
    "ChannelTimeoutError",
    "NotReadyError",
    "NotFoundError",
    "UpstreamError",
    # Convenience
    "search_or_none",
]

__version__ = "0.1.0"
