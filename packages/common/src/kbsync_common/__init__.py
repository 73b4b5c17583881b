"""kb-sync common utilities: settings, logging, errors, retry, JSON-RPC."""

from kbsync_common.config import Settings, get_settings
from kbsync_common.errors import (
    ChannelError,
    ChannelTimeoutError,
    KBSyncError,
    NotFoundError,
    NotReadyError,
    RemoteError,
    UpstreamError,
)
from kbsync_common.logging_config import configure_logging, get_logger
from kbsync_common.retry import retry_on_exception

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "retry_on_exception",
    # Errors
    "KBSyncError",
    "NotReadyError",
    "NotFoundError",
    "UpstreamError",
    "ChannelError",
    "ChannelTimeoutError",
    "RemoteError",
]
