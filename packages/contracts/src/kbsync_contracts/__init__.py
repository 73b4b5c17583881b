"""kb-sync contracts - pure Pydantic schemas.

This package contains ONLY Pydantic schemas with no business logic.
Dependencies: pydantic only (no logging, no sockets).
"""

from kbsync_contracts.models import (
    DEFAULT_DOCUMENT_COUNT,
    DEFAULT_THRESHOLD,
    MAX_KNOWLEDGE_TOP_K,
    # Descriptors
    ApiClientDescriptor,
    ModelDescriptor,
    ModelInfo,
    ProviderDescriptor,
    # Sync payload
    KnowledgeBaseMetadata,
    KnowledgeBaseParams,
    SyncAck,
    SyncEntry,
    # Search
    KnowledgeBaseListResponse,
    ScoredResult,
    SearchRequest,
    SearchResponse,
    SearchResponseItem,
    # Owner-side entities
    KnowledgeBase,
    KnowledgeItem,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_DOCUMENT_COUNT",
    "DEFAULT_THRESHOLD",
    "MAX_KNOWLEDGE_TOP_K",
    # Descriptors
    "ApiClientDescriptor",
    "ModelDescriptor",
    "ModelInfo",
    "ProviderDescriptor",
    # Sync payload
    "KnowledgeBaseMetadata",
    "KnowledgeBaseParams",
    "SyncAck",
    "SyncEntry",
    # Search
    "KnowledgeBaseListResponse",
    "ScoredResult",
    "SearchRequest",
    "SearchResponse",
    "SearchResponseItem",
    # Owner-side entities
    "KnowledgeBase",
    "KnowledgeItem",
]
