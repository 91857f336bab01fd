"""Pricing recalculation for a batch of shipment drafts.

One pricing request is issued per draft. Results are merged back onto the
*current* store contents, not onto the snapshot the requests were built from:
the user may keep editing while requests are in flight, and those edits win.
Only the pricing fields of a response are ever written.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import MissingDimensions, PricingUnavailable
from shipment_batch.core.logging import get_logger
from shipment_batch.models.enums import EngineState, RecalcMode
from shipment_batch.schemas.draft import ShipmentDraft
from shipment_batch.services.countries import country_name_to_code
from shipment_batch.services.draft_store import DraftStore
from shipment_batch.services.providers.pricing import PricingProvider
from shipment_batch.services.providers.types import PricingRequest, PricingResult
from shipment_batch.services.weights import calculate_weights

logger = get_logger("pricing")

PRICING_FIELDS = ("pricing_options", "selected_service_option", "pricing_error", "duties")


def pricing_inputs(draft: ShipmentDraft) -> tuple:
    """Fields a price depends on; a response for other inputs is stale."""
    return (
        draft.receiver_country,
        draft.length,
        draft.width,
        draft.height,
        draft.weight,
        draft.hs_code_clean,
        draft.customs_value,
    )


def cleared_pricing() -> dict:
    return {"pricing_options": (), "selected_service_option": None, "pricing_error": None, "duties": None}


@dataclass
class RecalculationSummary:
    mode: RecalcMode
    requested: int
    succeeded: int
    failed: int
    stale: int
    merge: str
    version: int


@dataclass
class _Outcome:
    draft_id: str
    inputs: tuple
    result: PricingResult | None = None
    error: str | None = None


class PricingEngine:
    def __init__(
        self,
        store: DraftStore,
        provider: PricingProvider | None = None,
        notifier: Callable[[RecalculationSummary], None] | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.store = store
        self.provider = provider or PricingProvider()
        self.notifier = notifier
        self.state = EngineState.IDLE
        self._concurrency = concurrency or get_settings().pricing_concurrency

    @property
    def running(self) -> bool:
        return self.state is EngineState.RUNNING

    async def recalculate(
        self,
        draft_ids: Iterable[str] | None = None,
        mode: RecalcMode = RecalcMode.INTERACTIVE,
    ) -> RecalculationSummary | None:
        if self.state is EngineState.RUNNING:
            logger.info("pricing_recalculation_dropped", reason="in_flight", mode=mode.value)
            return None

        snapshot = self.store.snapshot()
        wanted = set(draft_ids) if draft_ids is not None else None
        targets = [
            draft
            for draft in snapshot.drafts
            if not draft.skip_import and (wanted is None or draft.id in wanted)
        ]
        if not targets:
            return None

        incomplete = [draft for draft in targets if not draft.dimensions_complete]
        if incomplete:
            if mode is RecalcMode.SILENT:
                logger.debug("pricing_recalculation_skipped", reason="missing_dimensions", count=len(incomplete))
                return None
            raise MissingDimensions(
                f"{len(incomplete)} shipment(s) are missing package dimensions or weight",
                details=[
                    {"row_index": draft.row_index, "draft_id": draft.id, "receiver_name": draft.receiver_name}
                    for draft in incomplete
                ],
            )

        self.state = EngineState.RUNNING
        target_ids = [draft.id for draft in targets]
        try:
            self.store.apply({draft_id: {"is_recalculating": True} for draft_id in target_ids}, strict=False)
            semaphore = asyncio.Semaphore(self._concurrency)
            outcomes = await asyncio.gather(*(self._price_one(draft, semaphore) for draft in targets))
            full = len(targets) == len(snapshot)
            summary = self._merge(outcomes, full=full, mode=mode)
        finally:
            self._release_flags(target_ids)
            self.state = EngineState.IDLE

        if mode is RecalcMode.INTERACTIVE:
            logger.info(
                "pricing_recalculated",
                succeeded=summary.succeeded,
                failed=summary.failed,
                stale=summary.stale,
                merge=summary.merge,
            )
            if self.notifier is not None:
                self.notifier(summary)
        else:
            logger.debug("pricing_recalculated_silently", succeeded=summary.succeeded, failed=summary.failed)
        return summary

    def build_request(self, draft: ShipmentDraft) -> PricingRequest:
        weights = calculate_weights(draft.length, draft.width, draft.height, draft.weight)
        return PricingRequest(
            country=country_name_to_code(draft.receiver_country) or draft.receiver_country,
            package_length=draft.length,
            package_width=draft.width,
            package_height=draft.height,
            package_weight=weights.billable_weight,
            hs_code=draft.hs_code_clean,
            customs_value=draft.customs_value,
            product_name=draft.product_name,
            product_description=draft.product_description,
        )

    async def _price_one(self, draft: ShipmentDraft, semaphore: asyncio.Semaphore) -> _Outcome:
        outcome = _Outcome(draft_id=draft.id, inputs=pricing_inputs(draft))
        request = self.build_request(draft)
        async with semaphore:
            try:
                outcome.result = await self.provider.price(request)
            except PricingUnavailable as exc:
                outcome.error = exc.message
                logger.info("pricing_unavailable", draft_id=draft.id, row_index=draft.row_index, error=exc.message)
        return outcome

    def _patch_for(self, outcome: _Outcome) -> dict:
        if outcome.result is None:
            return {
                "pricing_options": (),
                "selected_service_option": None,
                "pricing_error": outcome.error or "Pricing unavailable",
                "duties": None,
            }
        options = outcome.result.options
        return {
            "pricing_options": options,
            "selected_service_option": options[0] if options else None,
            "pricing_error": None,
            "duties": outcome.result.duties,
        }

    def _merge(self, outcomes: list[_Outcome], full: bool, mode: RecalcMode) -> RecalculationSummary:
        current = self.store.snapshot()
        patches: dict[str, dict] = {}
        succeeded = failed = stale = 0
        for outcome in outcomes:
            draft = current.find(outcome.draft_id)
            if draft is None or pricing_inputs(draft) != outcome.inputs:
                stale += 1
                continue
            patch = self._patch_for(outcome)
            patch["is_recalculating"] = False
            patches[outcome.draft_id] = patch
            if outcome.result is None:
                failed += 1
            else:
                succeeded += 1

        if full:
            drafts = [
                draft.model_copy(update=patches[draft.id]) if draft.id in patches else draft
                for draft in current.drafts
            ]
            merged = self.store.replace(drafts)
        else:
            merged = self.store.apply(patches, strict=False)

        return RecalculationSummary(
            mode=mode,
            requested=len(outcomes),
            succeeded=succeeded,
            failed=failed,
            stale=stale,
            merge="full" if full else "partial",
            version=merged.version,
        )

    def _release_flags(self, draft_ids: list[str]) -> None:
        current = self.store.snapshot()
        flagged = {
            draft_id: {"is_recalculating": False}
            for draft_id in draft_ids
            if (draft := current.find(draft_id)) is not None and draft.is_recalculating
        }
        self.store.apply(flagged, strict=False)
