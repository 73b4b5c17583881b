"""Observable owner-side state.

The owner process is the single source of truth for knowledge bases. State is
immutable; every mutation builds a new ``OwnerState`` and notifies subscribers
synchronously, in subscription order.
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, Sequence

from kbsync_common import get_logger
from kbsync_contracts import KnowledgeBase

logger = get_logger(__name__)


@dataclass(frozen=True)
class OwnerState:
    """Knowledge bases plus the allow-list of ids exposed to the daemon."""

    bases: tuple[KnowledgeBase, ...] = ()
    selected_ids: tuple[str, ...] = ()


Listener = Callable[[OwnerState], None]


class OwnerStore:
    """In-memory store with explicit observer registration."""

    def __init__(
        self,
        bases: Iterable[KnowledgeBase] = (),
        selected_ids: Iterable[str] = (),
    ) -> None:
        self._state = OwnerState(bases=tuple(bases), selected_ids=tuple(selected_ids))
        self._listeners: list[Listener] = []

    @classmethod
    def from_file(cls, path: str | Path) -> "OwnerStore":
        """Load a store from a JSON document.

        Expected shape: ``{"bases": [...], "selected_ids": ["kb-1"]}``.
        """
        state = _read_state(Path(path))
        return cls(bases=state.bases, selected_ids=state.selected_ids)

    def get_state(self) -> OwnerState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns the handle that removes it."""
        self._listeners.append(listener)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def replace_bases(self, bases: Iterable[KnowledgeBase]) -> None:
        self._commit(replace(self._state, bases=tuple(bases)))

    def upsert_base(self, base: KnowledgeBase) -> None:
        """Insert a base, or replace the one with the same id in place."""
        bases = list(self._state.bases)
        for i, existing in enumerate(bases):
            if existing.id == base.id:
                bases[i] = base
                break
        else:
            bases.append(base)
        self._commit(replace(self._state, bases=tuple(bases)))

    def remove_base(self, base_id: str) -> None:
        bases = tuple(b for b in self._state.bases if b.id != base_id)
        self._commit(replace(self._state, bases=bases))

    def set_selected_ids(self, selected_ids: Sequence[str]) -> None:
        self._commit(replace(self._state, selected_ids=tuple(selected_ids)))

    def reload(self, path: str | Path) -> None:
        """Re-read bases and allow-list from disk as a single mutation."""
        state = _read_state(Path(path))
        logger.info("owner_state_reloaded", path=str(path), base_count=len(state.bases))
        self._commit(state)

    def _commit(self, state: OwnerState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)


def _read_state(path: Path) -> OwnerState:
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)

    bases = tuple(KnowledgeBase.model_validate(b) for b in raw.get("bases", []))
    selected_ids = tuple(raw.get("selected_ids", []))
    return OwnerState(bases=bases, selected_ids=selected_ids)
