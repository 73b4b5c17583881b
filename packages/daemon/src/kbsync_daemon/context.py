"""Process-scoped daemon state.

Built once by ``run_server`` and handed to every request handler, so there
are no module-level singletons to reset between tests.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from kbsync_common import Settings, get_logger
from kbsync_common.jsonrpc import JsonRpcClient, PeerChannel
from kbsync_contracts import MAX_KNOWLEDGE_TOP_K

from kbsync_daemon.collaborators import Reranker, Retriever, SocketReranker, SocketRetriever
from kbsync_daemon.replica import StoreReplica
from kbsync_daemon.search import QueryOrchestrator

logger = get_logger(__name__)


@dataclass
class DaemonContext:
    """Everything a request handler may touch."""

    replica: StoreReplica
    orchestrator: QueryOrchestrator
    started_at: float = field(default_factory=time.time)

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at


def build_context(
    settings: Settings,
    peer: Optional[PeerChannel] = None,
    retriever: Optional[Retriever] = None,
    reranker: Optional[Reranker] = None,
) -> DaemonContext:
    """Wire replica, collaborators and orchestrator from settings.

    Args:
        settings: Daemon settings
        peer: Channel to the owner (defaults to its Unix socket)
        retriever: Retrieval collaborator (defaults to the engine socket)
        reranker: Rerank collaborator (defaults to the engine socket)
    """
    if peer is None:
        peer = JsonRpcClient(settings.owner_socket_path, timeout=settings.request_timeout)
    if retriever is None:
        retriever = SocketRetriever(settings.retrieval_socket_path)
    if reranker is None:
        reranker = SocketReranker(settings.retrieval_socket_path)

    replica = StoreReplica(peer)
    orchestrator = QueryOrchestrator(
        replica,
        retriever,
        reranker,
        default_document_count=settings.default_document_count,
        default_threshold=settings.default_threshold,
        max_top_k=MAX_KNOWLEDGE_TOP_K,
    )

    logger.info(
        "daemon_context_built",
        owner_socket=settings.owner_socket_path,
        retrieval_socket=settings.retrieval_socket_path,
    )
    return DaemonContext(replica=replica, orchestrator=orchestrator)
