"""Snapshot builder and change detector.

A snapshot is the full list of ``SyncEntry`` values for the selected bases.
The fingerprint summarizes identity and recency of that selection; two states
with the same fingerprint produce the same snapshot, so no push is needed.

Fingerprint format::

    {selection}#{id}:{updated_at}:{version}:{item_count}|...
    {selection}#EMPTY

where ``selection`` is ``ALL`` or the sorted allow-list joined by ``,``.
"""

from typing import Sequence

from kbsync_common import get_logger
from kbsync_contracts import (
    KnowledgeBase,
    KnowledgeBaseMetadata,
    KnowledgeBaseParams,
    ModelDescriptor,
    ModelInfo,
    SyncEntry,
)

from kbsync_owner.store import OwnerState

logger = get_logger(__name__)

ALL_SELECTION = "ALL"
EMPTY_MARKER = "EMPTY"


def selected_ids(state: OwnerState) -> list[str]:
    """Allow-listed ids with blanks dropped."""
    return [kb_id for kb_id in state.selected_ids if kb_id]


def filter_bases(bases: Sequence[KnowledgeBase], ids: Sequence[str]) -> list[KnowledgeBase]:
    """Bases in the allow-list (all bases when it is empty), natural order kept."""
    if not ids:
        return list(bases)
    id_set = set(ids)
    return [base for base in bases if base.id in id_set]


def selection_signature(ids: Sequence[str]) -> str:
    return ",".join(sorted(ids)) if ids else ALL_SELECTION


def compute_fingerprint(state: OwnerState) -> str:
    ids = selected_ids(state)
    filtered = filter_bases(state.bases, ids)
    selection = selection_signature(ids)

    if not filtered:
        return f"{selection}#{EMPTY_MARKER}"

    return f"{selection}#" + "|".join(
        f"{base.id}:{base.updated_at}:{base.version}:{len(base.items)}" for base in filtered
    )


def _pick_model(model: ModelInfo) -> ModelDescriptor:
    return ModelDescriptor(
        id=model.id,
        name=model.name,
        provider=model.provider,
        group=model.group,
        description=model.description,
    )


def to_metadata(base: KnowledgeBase) -> KnowledgeBaseMetadata:
    return KnowledgeBaseMetadata(
        id=base.id,
        name=base.name,
        description=base.description,
        dimensions=base.dimensions,
        document_count=base.document_count,
        chunk_size=base.chunk_size,
        chunk_overlap=base.chunk_overlap,
        threshold=base.threshold,
        created_at=base.created_at,
        updated_at=base.updated_at,
        version=base.version,
        preprocess_provider=base.preprocess_provider,
        model=_pick_model(base.model),
        rerank_model=_pick_model(base.rerank_model) if base.rerank_model else None,
    )


def to_params(base: KnowledgeBase) -> KnowledgeBaseParams:
    return KnowledgeBaseParams(
        id=base.id,
        embed_api_client=base.embed_api_client,
        rerank_api_client=base.rerank_api_client,
        dimensions=base.dimensions,
        chunk_size=base.chunk_size,
        chunk_overlap=base.chunk_overlap,
        document_count=base.document_count,
        preprocess_provider=base.preprocess_provider,
    )


def build_snapshot(state: OwnerState) -> list[SyncEntry]:
    """Project the selected bases into sync entries.

    Allow-listed ids that do not exist locally are logged and skipped.
    """
    ids = selected_ids(state)

    if ids:
        known = {base.id for base in state.bases}
        missing = [kb_id for kb_id in ids if kb_id not in known]
        if missing:
            logger.warning("selected_bases_missing", missing=missing)

    return [
        SyncEntry(metadata=to_metadata(base), params=to_params(base))
        for base in filter_bases(state.bases, ids)
    ]
