"""Pydantic schemas for kb-sync.

Wire shapes exchanged between the owner process and the daemon, plus the
owner-side knowledge base entity the snapshots are projected from.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Fixed ceiling on top_k regardless of per-base configuration
MAX_KNOWLEDGE_TOP_K = 50

DEFAULT_DOCUMENT_COUNT = 6
DEFAULT_THRESHOLD = 0.0


# =============================================================================
# Descriptors
# =============================================================================


class ModelDescriptor(BaseModel):
    """Embedding or rerank model, as exposed to API consumers."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Model identifier")
    name: str = Field(description="Display name")
    provider: str = Field(description="Provider id (openai, ollama, ...)")
    group: Optional[str] = Field(default=None, description="Provider model group")
    description: Optional[str] = Field(default=None)


class ModelInfo(ModelDescriptor):
    """Owner-side model record; may carry provider-specific extra fields."""

    model_config = ConfigDict(frozen=True, extra="allow")


class ProviderDescriptor(BaseModel):
    """Optional document preprocessing provider (opaque to the core)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    name: Optional[str] = None
    type: Optional[str] = None


class ApiClientDescriptor(BaseModel):
    """Connection details for an embedding or rerank endpoint."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    api_key: str = ""
    base_url: str = ""


# =============================================================================
# Sync payload
# =============================================================================


class KnowledgeBaseMetadata(BaseModel):
    """Snapshot of one knowledge base's metadata at sync time."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None
    dimensions: Optional[int] = None
    document_count: Optional[int] = Field(default=None, ge=0)
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    created_at: int = Field(description="Epoch milliseconds")
    updated_at: int = Field(description="Epoch milliseconds")
    version: int = 0
    preprocess_provider: Optional[ProviderDescriptor] = None
    model: ModelDescriptor
    rerank_model: Optional[ModelDescriptor] = None


class KnowledgeBaseParams(BaseModel):
    """Configuration needed to query one knowledge base.

    Passed through to the retrieval and rerank collaborators untouched.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    embed_api_client: ApiClientDescriptor
    rerank_api_client: Optional[ApiClientDescriptor] = None
    dimensions: Optional[int] = None
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    document_count: Optional[int] = None
    preprocess_provider: Optional[ProviderDescriptor] = None

    @property
    def has_rerank(self) -> bool:
        return self.rerank_api_client is not None and bool(self.rerank_api_client.model)


class SyncEntry(BaseModel):
    """Unit of replication: one base's metadata paired with its params."""

    model_config = ConfigDict(frozen=True)

    metadata: KnowledgeBaseMetadata
    params: KnowledgeBaseParams

    @property
    def id(self) -> str:
        return self.metadata.id


class SyncAck(BaseModel):
    """Daemon's answer to a pushed snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    accepted: bool
    synced_at: Optional[datetime] = Field(default=None, alias="syncedAt")


# =============================================================================
# Search
# =============================================================================


class ScoredResult(BaseModel):
    """One retrieved fragment."""

    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    """Search over one or more synced knowledge bases."""

    query: str = Field(min_length=1, max_length=2000)
    knowledge_base_ids: list[str] = Field(min_length=1)
    rewrite: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    top_k: Optional[int] = Field(default=None, ge=1, le=MAX_KNOWLEDGE_TOP_K)

    @field_validator("knowledge_base_ids")
    @classmethod
    def _non_empty_ids(cls, value: list[str]) -> list[str]:
        if any(not kb_id for kb_id in value):
            raise ValueError("knowledge_base_ids must not contain empty ids")
        return value

    @property
    def effective_query(self) -> str:
        """Rewritten query when present and non-blank, else the original."""
        if self.rewrite and self.rewrite.strip():
            return self.rewrite
        return self.query


class SearchResponseItem(BaseModel):
    """Results for one knowledge base, in retrieval (or rerank) order."""

    knowledge_base_id: str
    knowledge_base_name: str
    results: list[ScoredResult] = Field(default_factory=list)


class SearchResponse(BaseModel):
    object: Literal["list"] = "list"
    data: list[SearchResponseItem] = Field(default_factory=list)


class KnowledgeBaseListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    object: Literal["list"] = "list"
    data: list[KnowledgeBaseMetadata] = Field(default_factory=list)
    total: int = 0
    synced_at: Optional[str] = Field(default=None, alias="syncedAt", description="ISO-8601")


# =============================================================================
# Owner-side entities
# =============================================================================


class KnowledgeItem(BaseModel):
    """A document, URL or note added to a knowledge base."""

    id: str
    type: str = "file"
    source: Optional[str] = None


class KnowledgeBase(BaseModel):
    """Authoritative knowledge base record held by the owner process."""

    id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None
    model: ModelInfo
    rerank_model: Optional[ModelInfo] = None
    embed_api_client: ApiClientDescriptor
    rerank_api_client: Optional[ApiClientDescriptor] = None
    dimensions: Optional[int] = None
    document_count: Optional[int] = Field(default=None, ge=0)
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    created_at: int
    updated_at: int
    version: int = 0
    items: list[KnowledgeItem] = Field(default_factory=list)
    preprocess_provider: Optional[ProviderDescriptor] = None
