from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from shipment_batch.core.errors import (
    BatchNotFound,
    InvalidServiceOption,
    NothingToSubmit,
    StaleDdpQuote,
)
from shipment_batch.core.logging import get_logger
from shipment_batch.models.enums import RecalcMode, ShippingTerms
from shipment_batch.schemas.draft import DraftUpdate, RawShipmentRow, ShipmentDraft, ValidationIssue, clean_hs_code
from shipment_batch.services.compliance import TaxIdValidator
from shipment_batch.services.ddp import RESET_PATCH, DdpCalculator, DdpQuote
from shipment_batch.services.draft_store import DraftSnapshot, DraftStore
from shipment_batch.services.insurance import InsuranceCalculator
from shipment_batch.services.pricing import PricingEngine, RecalculationSummary, cleared_pricing
from shipment_batch.services.providers.balance import BalanceProvider
from shipment_batch.services.providers.duties import DutyProvider
from shipment_batch.services.providers.insurance import InsuranceProvider
from shipment_batch.services.providers.orders import OrderProvider
from shipment_batch.services.providers.pricing import PricingProvider
from shipment_batch.services.providers.types import DeductionResult, OrderCreationResult
from shipment_batch.services.templates import TemplateStore
from shipment_batch.services.weights import weight_patch

logger = get_logger("batch")

DIMENSION_FIELDS = ("length", "width", "height", "weight")
INSURANCE_FIELDS = ("has_insurance", "insurance_value")
NON_NULLABLE_FIELDS = {"receiver_name", "receiver_country", "customs_value", "shipping_terms"}


@dataclass
class BatchEvent:
    kind: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class SubmissionResult:
    created: OrderCreationResult
    submitted_ids: list[str]
    unpriced_ids: list[str]


class BatchSession:
    """One user's batch from upload to submission."""

    def __init__(
        self,
        user_id: str,
        *,
        pricing_provider: PricingProvider | None = None,
        insurance_provider: InsuranceProvider | None = None,
        duty_provider: DutyProvider | None = None,
        balance_provider: BalanceProvider | None = None,
        order_provider: OrderProvider | None = None,
        template_store: TemplateStore | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.store = DraftStore()
        self.events: list[BatchEvent] = []
        self.pricing = PricingEngine(self.store, pricing_provider, notifier=self._on_recalculated)
        self.insurance = InsuranceCalculator(insurance_provider)
        self.ddp = DdpCalculator(self.store, duty_provider, balance_provider)
        self.validator = TaxIdValidator()
        self.orders = order_provider or OrderProvider()
        self.templates = template_store or TemplateStore()
        self.quote: DdpQuote | None = None

    def load(self, rows: Iterable[RawShipmentRow]) -> DraftSnapshot:
        drafts = []
        for index, row in enumerate(rows, start=1):
            draft = row.to_draft(row_index=index)
            patch = weight_patch(draft)
            if draft.has_insurance:
                patch.update(self.insurance.toggle_patch(draft, True, draft.insurance_value or None))
            drafts.append(draft.model_copy(update=patch))
        self.quote = None
        snapshot = self.store.replace(drafts)
        logger.info("batch_loaded", batch_id=self.id, user_id=self.user_id, count=len(drafts))
        return snapshot

    def discard(self) -> None:
        self.store.clear()
        self.quote = None
        logger.info("batch_discarded", batch_id=self.id)

    async def edit(self, draft_id: str, update: DraftUpdate) -> ShipmentDraft:
        draft = self.store.get(draft_id)
        data = update.model_dump(exclude_unset=True)
        patch = {
            key: value
            for key, value in data.items()
            if key not in INSURANCE_FIELDS and not (value is None and key in NON_NULLABLE_FIELDS)
        }

        if "hs_code" in patch:
            patch["hs_code_clean"] = clean_hs_code(patch["hs_code"])

        dims_changed = any(key in patch and patch[key] != getattr(draft, key) for key in DIMENSION_FIELDS)
        hs_changed = "hs_code" in patch and patch["hs_code_clean"] != draft.hs_code_clean
        value_changed = "customs_value" in patch and patch["customs_value"] != draft.customs_value
        terms_changed = "shipping_terms" in patch and patch["shipping_terms"] != draft.shipping_terms
        country_changed = "receiver_country" in patch and patch["receiver_country"] != draft.receiver_country

        if dims_changed:
            patch.update(weight_patch(draft, **patch))
            patch["selected_template"] = None
        if dims_changed or hs_changed or value_changed or country_changed:
            patch.update(cleared_pricing())

        if data.get("has_insurance") is not None:
            patch.update(self.insurance.toggle_patch(draft, data["has_insurance"], data.get("insurance_value")))
        elif data.get("insurance_value") is not None and draft.has_insurance:
            patch.update(self.insurance.toggle_patch(draft, True, data["insurance_value"]))

        ddp_inputs_changed = hs_changed or value_changed or terms_changed or country_changed
        if ddp_inputs_changed:
            self.ddp.invalidate(draft_id)
            patch.update(RESET_PATCH)
            self.quote = None

        updated = self.store.patch(draft_id, **patch)
        logger.info("draft_edited", batch_id=self.id, draft_id=draft_id, fields=sorted(data))

        if value_changed and updated.has_insurance and "has_insurance" not in data:
            await self._reprice_insurance(updated)

        triggers_ddp = (terms_changed and updated.shipping_terms is ShippingTerms.DDP) or (
            (hs_changed or value_changed) and updated.shipping_terms is ShippingTerms.DDP
        )
        if triggers_ddp:
            await self.ddp.calculate_for(draft_id)

        if dims_changed or hs_changed or value_changed or country_changed:
            await self.pricing.recalculate([draft_id], mode=RecalcMode.SILENT)
        return self.store.get(draft_id)

    async def apply_template(self, draft_id: str, template_name: str) -> ShipmentDraft:
        template = await self.templates.get(self.user_id, template_name)
        draft = self.store.get(draft_id)
        dimensions = {key: getattr(template, key) for key in DIMENSION_FIELDS}
        patch = {**dimensions, **weight_patch(draft, **dimensions), **cleared_pricing()}
        patch["selected_template"] = template.name
        self.store.patch(draft_id, **patch)
        await self.pricing.recalculate([draft_id], mode=RecalcMode.SILENT)
        return self.store.get(draft_id)

    def select_service(self, draft_id: str, option_id: str) -> ShipmentDraft:
        draft = self.store.get(draft_id)
        option = next((option for option in draft.pricing_options if option.id == option_id), None)
        if option is None:
            raise InvalidServiceOption(
                f"Service option '{option_id}' is not available for this shipment",
                details=[{"draft_id": draft_id, "available": [o.id for o in draft.pricing_options]}],
            )
        return self.store.patch(draft_id, selected_service_option=option)

    def set_skip(self, draft_id: str, skip: bool) -> ShipmentDraft:
        self.quote = None
        return self.store.set_skip(draft_id, skip)

    def set_selection(self, draft_ids: Iterable[str] | None, selected: bool = True) -> DraftSnapshot:
        if draft_ids is None:
            return self.store.select_all() if selected else self.store.clear_selection()
        return self.store.select(draft_ids, selected)

    async def recalculate(
        self, selected_only: bool = False, mode: RecalcMode = RecalcMode.INTERACTIVE
    ) -> RecalculationSummary | None:
        draft_ids = [draft.id for draft in self.store.snapshot().selected()] if selected_only else None
        return await self.pricing.recalculate(draft_ids, mode=mode)

    async def quote_ddp(self) -> DdpQuote:
        self.quote = await self.ddp.quote_batch(self.user_id)
        return self.quote

    async def confirm_ddp(self, quote_id: str) -> DeductionResult:
        if self.quote is None or self.quote.quote_id != quote_id:
            raise StaleDdpQuote("This DDP quote is no longer current; request a new quote")
        result = await self.ddp.confirm(self.quote)
        self.events.append(
            BatchEvent(
                kind="ddp_deducted",
                message=f"DDP duties charged for {len(self.quote.lines)} shipment(s)",
                data={"quote_id": quote_id, "new_balance": result.new_balance},
            )
        )
        return result

    def validate(self) -> list[ValidationIssue]:
        return self.validator.validate(self.store.snapshot().drafts)

    def finalized(self, snapshot: DraftSnapshot | None = None) -> list[ShipmentDraft]:
        snapshot = snapshot or self.store.snapshot()
        return [draft for draft in snapshot.active() if draft.selected_service_option is not None]

    async def submit(self) -> SubmissionResult:
        snapshot = self.store.snapshot()
        self.validator.ensure_compliant(snapshot.drafts)

        drafts = self.finalized(snapshot)
        if not drafts:
            raise NothingToSubmit("No priced shipments are ready for submission")
        unpriced = [draft.id for draft in snapshot.active() if draft.selected_service_option is None]

        created = await self.orders.create_batch(self.user_id, drafts)
        self.events.append(
            BatchEvent(
                kind="batch_submitted",
                message=f"{len(drafts)} shipment(s) created",
                data={"created": len(created.created), "unpriced": len(unpriced)},
            )
        )
        logger.info("batch_submitted", batch_id=self.id, submitted=len(drafts), unpriced=len(unpriced))
        return SubmissionResult(created=created, submitted_ids=[draft.id for draft in drafts], unpriced_ids=unpriced)

    async def _reprice_insurance(self, draft: ShipmentDraft) -> None:
        requested_value = draft.customs_value
        patch = await self.insurance.customs_value_patch(draft, requested_value)
        current = self.store.snapshot().find(draft.id)
        if current is None or current.customs_value != requested_value or not current.has_insurance:
            return
        self.store.apply({draft.id: patch}, strict=False)

    def _on_recalculated(self, summary: RecalculationSummary) -> None:
        if summary.failed:
            message = f"Priced {summary.succeeded} shipment(s); {summary.failed} could not be priced"
        else:
            message = f"Priced {summary.succeeded} shipment(s)"
        self.events.append(
            BatchEvent(
                kind="pricing_recalculated",
                message=message,
                data={"succeeded": summary.succeeded, "failed": summary.failed, "stale": summary.stale},
            )
        )


class BatchRegistry:
    """In-memory batches keyed by id; providers are shared by every session."""

    def __init__(self, **providers: Any) -> None:
        self._sessions: dict[str, BatchSession] = {}
        self._providers = providers

    def create(self, user_id: str, rows: Iterable[RawShipmentRow]) -> BatchSession:
        session = BatchSession(user_id, **self._providers)
        session.load(rows)
        self._sessions[session.id] = session
        return session

    def get(self, batch_id: str, user_id: str) -> BatchSession:
        session = self._sessions.get(batch_id)
        if session is None or session.user_id != user_id:
            raise BatchNotFound(f"Batch {batch_id} not found")
        return session

    def discard(self, batch_id: str, user_id: str) -> None:
        session = self.get(batch_id, user_id)
        session.discard()
        del self._sessions[batch_id]


registry = BatchRegistry()
