"""Unix socket client for the kb-sync daemon.

Usage
-----
>>> from kbsync_client import DaemonClient
>>> client = DaemonClient()
>>> if client.is_available():
...     response = client.search("vector databases", ["kb-1"])
...     for item in response.data:
...         print(item.knowledge_base_name, len(item.results))
"""

from __future__ import annotations

import json
import os
import socket
from typing import Any, Optional, Sequence

from kbsync_common.errors import ChannelError, ChannelTimeoutError, KBSyncError, error_from_rpc
from kbsync_contracts import KnowledgeBaseListResponse, SearchRequest, SearchResponse

from .models import HealthStatus


def _default_socket_path() -> str:
    """Get user-specific socket path."""
    user = os.environ.get("USER", "unknown")
    return os.environ.get("DAEMON_SOCKET_PATH", f"/tmp/kbsync_daemon_{user}.sock")


class DaemonClient:
    """Synchronous client for the kb-sync daemon.

    Parameters
    ----------
    socket_path : str, optional
        Unix socket path. Default: /tmp/kbsync_daemon_$USER.sock
    timeout : float
        Socket timeout in seconds (default: 10.0)

    Examples
    --------
    >>> client = DaemonClient()
    >>> bases = client.list_bases()
    >>> print(f"{bases.total} bases, synced at {bases.synced_at}")
    """

    def __init__(self, socket_path: Optional[str] = None, timeout: float = 10.0) -> None:
        self.socket_path = socket_path or _default_socket_path()
        self.timeout = timeout

    _request_id = 0

    def _send_request(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Send JSON-RPC 2.0 request to daemon socket.

        Raises:
            ChannelError: Cannot connect
            ChannelTimeoutError: Request timed out
            KBSyncError: RPC error response (NotReadyError, NotFoundError, ...)
        """
        DaemonClient._request_id += 1

        request = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": DaemonClient._request_id,
        }

        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout)
                sock.connect(self.socket_path)
                sock.sendall(json.dumps(request).encode("utf-8"))
                sock.shutdown(socket.SHUT_WR)

                chunks = []
                while True:
                    chunk = sock.recv(65536)
                    if not chunk:
                        break
                    chunks.append(chunk)

            response = json.loads(b"".join(chunks).decode("utf-8"))

        except socket.timeout:
            raise ChannelTimeoutError(f"Daemon timeout after {self.timeout}s")
        except OSError as e:
            raise ChannelError(f"Cannot connect to daemon at {self.socket_path}: {e}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ChannelError(f"Invalid response from daemon: {e}")

        if response.get("error"):
            raise error_from_rpc(response["error"])

        return response.get("result")

    def is_available(self) -> bool:
        """Check if the daemon socket responds."""
        if not os.path.exists(self.socket_path):
            return False
        try:
            self.health()
            return True
        except KBSyncError:
            return False

    def health(self) -> HealthStatus:
        """Get daemon and replica status."""
        return HealthStatus.model_validate(self._send_request("health") or {})

    def list_bases(self) -> KnowledgeBaseListResponse:
        """List synced knowledge bases.

        Raises:
            NotReadyError: No session or nothing synced yet
        """
        return KnowledgeBaseListResponse.model_validate(self._send_request("list_bases"))

    def search(
        self,
        query: str,
        knowledge_base_ids: Sequence[str],
        rewrite: Optional[str] = None,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> SearchResponse:
        """Search one or more synced knowledge bases.

        Raises:
            ValueError: Request fails validation (empty query, no ids, ...)
            NotReadyError: No session or nothing synced yet
            NotFoundError: None of the ids are synced
            UpstreamError: Retrieval or rerank failed
        """
        request = SearchRequest(
            query=query,
            knowledge_base_ids=list(knowledge_base_ids),
            rewrite=rewrite,
            threshold=threshold,
            top_k=top_k,
        )
        data = self._send_request("search", request.model_dump(exclude_none=True))
        return SearchResponse.model_validate(data)


def search_or_none(
    query: str,
    knowledge_base_ids: Sequence[str],
    top_k: Optional[int] = None,
) -> Optional[SearchResponse]:
    """Search with graceful failure.

    Returns None when the daemon is unavailable or not ready instead of raising.
    """
    try:
        client = DaemonClient()
        if not client.is_available():
            return None
        return client.search(query, knowledge_base_ids, top_k=top_k)
    except KBSyncError:
        return None
