"""Query orchestration over the store replica.

Per requested base:
    1. effective limit     = request top_k (capped) -> base document_count -> default
    2. effective threshold = request threshold -> base threshold -> default
    3. retrieve, keep results with score >= threshold (retrieval order kept)
    4. rerank when anything survived and the base has a rerank client
    5. keep the first `limit` results

Bases are processed concurrently; any failure fails the whole search.
"""

import asyncio
import time

from kbsync_common import NotFoundError, NotReadyError, UpstreamError, get_logger
from kbsync_contracts import (
    DEFAULT_DOCUMENT_COUNT,
    DEFAULT_THRESHOLD,
    MAX_KNOWLEDGE_TOP_K,
    KnowledgeBaseListResponse,
    KnowledgeBaseMetadata,
    ScoredResult,
    SearchRequest,
    SearchResponse,
    SearchResponseItem,
    SyncEntry,
)

from kbsync_daemon.collaborators import Reranker, Retriever
from kbsync_daemon.metrics import SEARCH_DURATION, UPSTREAM_FAILURES
from kbsync_daemon.replica import StoreReplica

logger = get_logger(__name__)


class QueryOrchestrator:
    """Serves listing and search from a ``StoreReplica``."""

    def __init__(
        self,
        replica: StoreReplica,
        retriever: Retriever,
        reranker: Reranker,
        default_document_count: int = DEFAULT_DOCUMENT_COUNT,
        default_threshold: float = DEFAULT_THRESHOLD,
        max_top_k: int = MAX_KNOWLEDGE_TOP_K,
    ) -> None:
        self.replica = replica
        self.retriever = retriever
        self.reranker = reranker
        self.default_document_count = default_document_count
        self.default_threshold = default_threshold
        self.max_top_k = max_top_k

    def _ensure_ready(self, message: str) -> None:
        if not self.replica.is_session_active() or not self.replica.has_bases():
            raise NotReadyError(message)

    def list_bases(self) -> KnowledgeBaseListResponse:
        """List synced bases.

        Raises:
            NotReadyError: No active session or nothing synced yet
        """
        self._ensure_ready(
            "Knowledge store is not ready. Ensure the owner process is running and knowledge is synced."
        )

        data = self.replica.get_bases()
        synced_at = self.replica.last_synced_at()
        return KnowledgeBaseListResponse(
            data=data,
            total=len(data),
            synced_at=synced_at.isoformat() if synced_at else None,
        )

    def effective_limit(self, request: SearchRequest, metadata: KnowledgeBaseMetadata) -> int:
        if request.top_k is not None:
            return min(request.top_k, self.max_top_k)
        if metadata.document_count is not None:
            return metadata.document_count
        return self.default_document_count

    def effective_threshold(self, request: SearchRequest, metadata: KnowledgeBaseMetadata) -> float:
        if request.threshold is not None:
            return request.threshold
        if metadata.threshold is not None:
            return metadata.threshold
        return self.default_threshold

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Search every requested base that exists in the replica.

        Raises:
            NotReadyError: No active session or nothing synced yet
            NotFoundError: None of the requested ids are synced
            UpstreamError: Retrieval or rerank failed for some base
        """
        self._ensure_ready(
            "Knowledge store is not ready. Please wait for synchronization to complete."
        )

        entries = [
            entry
            for entry in (self.replica.get_base(kb_id) for kb_id in request.knowledge_base_ids)
            if entry is not None
        ]
        if not entries:
            raise NotFoundError(
                "No matching knowledge bases found for provided ids.",
                knowledge_base_ids=request.knowledge_base_ids,
            )

        query = request.effective_query
        start = time.perf_counter()

        items = await asyncio.gather(
            *(self._search_base(query, entry, request) for entry in entries)
        )

        SEARCH_DURATION.observe(time.perf_counter() - start)
        logger.info(
            "knowledge_search_completed",
            base_count=len(items),
            query=request.query[:50],
            rewritten=query is not request.query,
        )

        return SearchResponse(data=list(items))

    async def _search_base(
        self, query: str, entry: SyncEntry, request: SearchRequest
    ) -> SearchResponseItem:
        metadata, params = entry.metadata, entry.params
        limit = self.effective_limit(request, metadata)
        threshold = self.effective_threshold(request, metadata)

        try:
            retrieved = await self.retriever.retrieve(query, params)
        except Exception as e:
            raise self._upstream_failure(metadata.id, "retrieve", e) from e

        filtered: list[ScoredResult] = [r for r in retrieved if r.score >= threshold]

        ranked = filtered
        if filtered and params.has_rerank:
            try:
                ranked = await self.reranker.rerank(query, params, filtered)
            except Exception as e:
                raise self._upstream_failure(metadata.id, "rerank", e) from e

        logger.debug(
            "base_search_completed",
            knowledge_base_id=metadata.id,
            retrieved=len(retrieved),
            filtered=len(filtered),
            reranked=ranked is not filtered,
            limit=limit,
            threshold=threshold,
        )

        return SearchResponseItem(
            knowledge_base_id=metadata.id,
            knowledge_base_name=metadata.name,
            results=list(ranked[:limit]),
        )

    @staticmethod
    def _upstream_failure(base_id: str, stage: str, error: Exception) -> UpstreamError:
        UPSTREAM_FAILURES.labels(stage=stage).inc()
        logger.error("knowledge_search_stage_failed", knowledge_base_id=base_id, stage=stage, error=str(error))
        return UpstreamError(
            f"Knowledge search failed for base {base_id} during {stage}: {error}",
            knowledge_base_id=base_id,
            stage=stage,
        )
