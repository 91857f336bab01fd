from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from shipment_batch.core.errors import DraftNotFound
from shipment_batch.core.logging import get_logger
from shipment_batch.schemas.draft import ShipmentDraft

logger = get_logger("draft_store")

Patch = Mapping[str, Any]


@dataclass(frozen=True)
class DraftSnapshot:
    version: int
    drafts: tuple[ShipmentDraft, ...]

    def __iter__(self) -> Iterator[ShipmentDraft]:
        return iter(self.drafts)

    def __len__(self) -> int:
        return len(self.drafts)

    def get(self, draft_id: str) -> ShipmentDraft:
        for draft in self.drafts:
            if draft.id == draft_id:
                return draft
        raise DraftNotFound(f"Draft {draft_id} not found")

    def find(self, draft_id: str) -> ShipmentDraft | None:
        return next((draft for draft in self.drafts if draft.id == draft_id), None)

    def active(self) -> list[ShipmentDraft]:
        return [draft for draft in self.drafts if not draft.skip_import]

    def selected(self) -> list[ShipmentDraft]:
        return [draft for draft in self.drafts if draft.selected]


class DraftStore:
    """Owns the batch's drafts.

    The collection is never mutated in place: every write builds a new tuple
    and bumps ``version``. Readers hold a ``DraftSnapshot`` and hand back
    patches keyed by draft id.
    """

    def __init__(self, drafts: Iterable[ShipmentDraft] = ()) -> None:
        self._snapshot = DraftSnapshot(version=0, drafts=tuple(drafts))

    @property
    def version(self) -> int:
        return self._snapshot.version

    def snapshot(self) -> DraftSnapshot:
        return self._snapshot

    def get(self, draft_id: str) -> ShipmentDraft:
        return self._snapshot.get(draft_id)

    def replace(self, drafts: Iterable[ShipmentDraft]) -> DraftSnapshot:
        self._snapshot = DraftSnapshot(version=self._snapshot.version + 1, drafts=tuple(drafts))
        logger.info("drafts_replaced", version=self._snapshot.version, count=len(self._snapshot))
        return self._snapshot

    def clear(self) -> DraftSnapshot:
        return self.replace(())

    def apply(self, patches: Mapping[str, Patch], strict: bool = True) -> DraftSnapshot:
        if not patches:
            return self._snapshot

        current = self._snapshot
        known = {draft.id for draft in current.drafts}
        missing = [draft_id for draft_id in patches if draft_id not in known]
        if missing and strict:
            raise DraftNotFound(f"Draft {missing[0]} not found", details=[{"draft_id": d} for d in missing])
        if missing:
            logger.info("patches_dropped", draft_ids=missing, version=current.version)

        drafts = tuple(
            draft.model_copy(update=dict(patches[draft.id])) if draft.id in patches else draft
            for draft in current.drafts
        )
        self._snapshot = DraftSnapshot(version=current.version + 1, drafts=drafts)
        return self._snapshot

    def patch(self, draft_id: str, **fields: Any) -> ShipmentDraft:
        return self.apply({draft_id: fields}).get(draft_id)

    def set_skip(self, draft_id: str, skip: bool) -> ShipmentDraft:
        return self.patch(draft_id, skip_import=skip)

    def select(self, draft_ids: Iterable[str], selected: bool = True) -> DraftSnapshot:
        return self.apply({draft_id: {"selected": selected} for draft_id in draft_ids})

    def select_all(self) -> DraftSnapshot:
        return self.apply({draft.id: {"selected": True} for draft in self._snapshot.drafts})

    def clear_selection(self) -> DraftSnapshot:
        return self.apply({draft.id: {"selected": False} for draft in self._snapshot.drafts if draft.selected})
