"""Custom error types for kb-sync.

All errors follow the "fail fast" principle with explicit messages. Errors that
cross the JSON-RPC boundary carry the error code they are reported with, so the
client SDK can raise the same class on the other side.
"""

from typing import Any, Optional

# JSON-RPC application error codes (reserved range -32000..-32099)
NOT_READY = -32001
NOT_FOUND = -32004
UPSTREAM_FAILURE = -32010


class KBSyncError(Exception):
    """Base exception for all kb-sync errors."""

    code = -32603

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = {k: v for k, v in context.items() if v is not None}


class NotReadyError(KBSyncError):
    """No active sync session, or the replica holds no bases yet.

    Retryable: the caller should try again once the owner has pushed.
    """

    code = NOT_READY


class NotFoundError(KBSyncError):
    """None of the requested knowledge base ids resolved."""

    code = NOT_FOUND


class UpstreamError(KBSyncError):
    """Retrieval or rerank collaborator failed for one knowledge base."""

    code = UPSTREAM_FAILURE

    def __init__(
        self,
        message: str,
        knowledge_base_id: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(message, knowledge_base_id=knowledge_base_id, stage=stage)
        self.knowledge_base_id = knowledge_base_id
        self.stage = stage


class ChannelError(KBSyncError):
    """Cannot reach the peer process over its socket."""

    pass


class ChannelTimeoutError(ChannelError):
    """Peer did not answer within the configured timeout."""

    pass


class RemoteError(KBSyncError):
    """Peer answered with a JSON-RPC error that maps to no local class."""

    def __init__(self, message: str, code: int, data: Optional[dict] = None) -> None:
        super().__init__(message, **(data or {}))
        self.code = code


ERRORS_BY_CODE: dict[int, type[KBSyncError]] = {
    NOT_READY: NotReadyError,
    NOT_FOUND: NotFoundError,
    UPSTREAM_FAILURE: UpstreamError,
}


def error_from_rpc(error: dict[str, Any]) -> KBSyncError:
    """Rebuild a local exception from a JSON-RPC error object."""
    code = error.get("code", KBSyncError.code)
    message = error.get("message", str(error))
    data = error.get("data") or {}

    error_cls = ERRORS_BY_CODE.get(code)
    if error_cls is UpstreamError:
        return UpstreamError(
            message,
            knowledge_base_id=data.get("knowledge_base_id"),
            stage=data.get("stage"),
        )
    if error_cls is not None:
        return error_cls(message, **data)
    return RemoteError(message, code=code, data=data)
