"""Delivered-Duty-Paid duty calculation and balance settlement.

Per shipment, a duty lookup moves a draft through
``idle -> calculating -> available | unavailable | error``. Lookups are not
serialized: each one takes a monotonic token, and a response is written only
when its token is still the newest for that draft and the draft's HS code and
customs value are still the ones that were asked about.

For a whole batch, ``quote_batch`` prices every eligible draft in one request
and checks the user's balance; ``confirm`` settles a quote exactly once.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from shipment_batch.core.errors import (
    BalanceUnavailable,
    DdpCalculationFailed,
    DdpUnavailable,
    DuplicateDeduction,
    InsufficientBalance,
    StaleDdpQuote,
)
from shipment_batch.core.logging import get_logger
from shipment_batch.models.enums import DdpStatus, ShippingTerms
from shipment_batch.schemas.draft import DDPCalculation, ShipmentDraft
from shipment_batch.services.countries import country_name_to_code, supports_ddp
from shipment_batch.services.draft_store import DraftStore
from shipment_batch.services.providers.balance import BalanceProvider
from shipment_batch.services.providers.duties import DutyProvider
from shipment_batch.services.providers.types import DeductionResult

logger = get_logger("ddp")

RESET_PATCH = {"ddp_status": DdpStatus.IDLE, "ddp_calculation": None, "calculated_duties": 0}


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_amount(minor: int) -> str:
    return f"${Decimal(minor) / 100:.2f}"


def is_ddp_eligible(draft: ShipmentDraft) -> bool:
    return (
        draft.shipping_terms is ShippingTerms.DDP
        and supports_ddp(country_name_to_code(draft.receiver_country))
        and draft.hs_code_clean is not None
        and draft.customs_value > 0
    )


@dataclass(frozen=True)
class DdpQuoteLine:
    draft_id: str
    row_index: int
    receiver_name: str
    hs_code: str
    customs_value: int
    total: Decimal
    available: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "shipmentIndex": self.row_index,
            "draftId": self.draft_id,
            "receiverName": self.receiver_name,
            "hsCode": self.hs_code,
            "customsValue": self.customs_value,
            "ddpAmount": str(self.total),
        }


@dataclass
class DdpQuote:
    user_id: str
    lines: list[DdpQuoteLine]
    total_ddp_amount: Decimal
    user_balance: int
    can_afford: bool
    quote_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def total_minor(self) -> int:
        return to_minor_units(self.total_ddp_amount)

    @property
    def shortfall(self) -> int:
        return max(self.total_minor - self.user_balance, 0)


class DdpCalculator:
    def __init__(
        self,
        store: DraftStore,
        provider: DutyProvider | None = None,
        balance_provider: BalanceProvider | None = None,
    ) -> None:
        self.store = store
        self.provider = provider or DutyProvider()
        self.balance_provider = balance_provider or BalanceProvider()
        self.balance: int | None = None
        self._counter = itertools.count(1)
        self._tokens: dict[str, int] = {}
        self._in_flight: set[str] = set()
        self._settled: set[str] = set()

    def invalidate(self, draft_id: str) -> None:
        """Supersede any lookup still in flight for ``draft_id``."""
        self._tokens[draft_id] = next(self._counter)

    async def calculate_for(self, draft_id: str) -> ShipmentDraft | None:
        draft = self.store.get(draft_id)
        if draft.skip_import or not is_ddp_eligible(draft):
            return None

        token = next(self._counter)
        self._tokens[draft_id] = token
        requested = (draft.hs_code_clean, draft.customs_value)
        self.store.patch(draft_id, ddp_status=DdpStatus.CALCULATING)

        try:
            line = await self.provider.calculate_ddp(draft.row_index, draft.hs_code_clean, draft.customs_value)
        except DdpCalculationFailed as exc:
            logger.warning("ddp_calculation_failed", draft_id=draft_id, hs_code=requested[0], error=exc.message)
            if self._is_current(draft_id, token, requested):
                return self.store.patch(
                    draft_id, ddp_status=DdpStatus.ERROR, ddp_calculation=None, calculated_duties=0
                )
            return None

        if not self._is_current(draft_id, token, requested):
            logger.info("ddp_response_discarded", draft_id=draft_id, token=token)
            return None
        return self.store.patch(draft_id, **self._result_patch(line.calculation))

    async def quote_batch(self, user_id: str) -> DdpQuote:
        snapshot = self.store.snapshot()
        eligible = [draft for draft in snapshot.active() if is_ddp_eligible(draft)]
        if not eligible:
            raise DdpUnavailable("No shipments in this batch qualify for DDP")

        by_index = {draft.row_index: draft for draft in eligible}
        shipments = [
            {
                "shipmentIndex": draft.row_index,
                "draftId": draft.id,
                "hsCode": draft.hs_code_clean,
                "customsValue": draft.customs_value,
                "country": country_name_to_code(draft.receiver_country),
            }
            for draft in eligible
        ]
        for draft in eligible:
            self.invalidate(draft.id)
        self.store.apply({draft.id: {"ddp_status": DdpStatus.CALCULATING} for draft in eligible})

        try:
            result = await self.provider.calculate_bulk(shipments, user_id)
            if not result.success:
                raise DdpCalculationFailed("Duty service could not calculate this batch")
        except DdpCalculationFailed:
            self.store.apply(
                {draft.id: {"ddp_status": DdpStatus.ERROR, "ddp_calculation": None} for draft in eligible},
                strict=False,
            )
            raise

        try:
            balance = await self.balance_provider.get_balance(user_id)
        except BalanceUnavailable as exc:
            logger.warning("ddp_balance_unavailable", user_id=user_id, error=exc.message)
            self.store.apply({draft.id: dict(RESET_PATCH) for draft in eligible}, strict=False)
            raise

        current = self.store.snapshot()
        patches: dict[str, dict] = {}
        lines: list[DdpQuoteLine] = []
        for line in result.lines:
            requested = by_index.get(line.shipment_index)
            if requested is None:
                continue
            draft = current.find(requested.id)
            if draft is None or (draft.hs_code_clean, draft.customs_value) != (
                requested.hs_code_clean,
                requested.customs_value,
            ):
                continue
            calc = line.calculation
            patches[draft.id] = self._result_patch(calc)
            lines.append(
                DdpQuoteLine(
                    draft_id=draft.id,
                    row_index=draft.row_index,
                    receiver_name=draft.receiver_name,
                    hs_code=draft.hs_code_clean,
                    customs_value=draft.customs_value,
                    total=calc.total,
                    available=calc.available,
                )
            )
        unanswered = {draft.id: dict(RESET_PATCH) for draft in eligible if draft.id not in patches}
        self.store.apply({**unanswered, **patches}, strict=False)

        total = sum((line.total for line in lines if line.available), Decimal("0"))
        self.balance = balance
        quote = DdpQuote(
            user_id=user_id,
            lines=lines,
            total_ddp_amount=total,
            user_balance=balance,
            can_afford=balance >= to_minor_units(total),
        )
        logger.info(
            "ddp_batch_quoted",
            quote_id=quote.quote_id,
            shipments=len(lines),
            total=str(total),
            balance=balance,
            can_afford=quote.can_afford,
        )
        return quote

    async def confirm(self, quote: DdpQuote) -> DeductionResult:
        if quote.quote_id in self._settled or quote.quote_id in self._in_flight:
            raise DuplicateDeduction(f"DDP quote {quote.quote_id} has already been submitted")
        if not quote.can_afford:
            raise InsufficientBalance(
                f"Balance {format_amount(quote.user_balance)} does not cover DDP duties of "
                f"{format_amount(quote.total_minor)}. Add at least {format_amount(quote.shortfall)} "
                "to your balance and confirm again.",
                details=[{"balance": quote.user_balance, "required": quote.total_minor, "shortfall": quote.shortfall}],
            )
        payable = [line for line in quote.lines if line.available]
        if not payable:
            raise DdpUnavailable("This quote has no payable DDP duties")
        self._check_fresh(quote)

        self._in_flight.add(quote.quote_id)
        try:
            result = await self.balance_provider.deduct_ddp_balance(
                quote.user_id,
                quote.total_ddp_amount,
                [line.to_payload() for line in payable],
                idempotency_key=quote.quote_id,
            )
        finally:
            self._in_flight.discard(quote.quote_id)

        self._settled.add(quote.quote_id)
        if result.new_balance is not None:
            self.balance = result.new_balance
        return result

    def _check_fresh(self, quote: DdpQuote) -> None:
        current = self.store.snapshot()
        changed = []
        for line in quote.lines:
            draft = current.find(line.draft_id)
            if (
                draft is None
                or draft.skip_import
                or (draft.hs_code_clean, draft.customs_value) != (line.hs_code, line.customs_value)
            ):
                changed.append({"draft_id": line.draft_id, "row_index": line.row_index})
        if changed:
            raise StaleDdpQuote("Shipments changed since this DDP quote was calculated; recalculate first", changed)

    def _is_current(self, draft_id: str, token: int, requested: tuple) -> bool:
        if self._tokens.get(draft_id) != token:
            return False
        draft = self.store.snapshot().find(draft_id)
        return draft is not None and (draft.hs_code_clean, draft.customs_value) == requested

    def _result_patch(self, calc: DDPCalculation) -> dict[str, Any]:
        if calc.available:
            return {
                "ddp_status": DdpStatus.AVAILABLE,
                "ddp_calculation": calc,
                "calculated_duties": to_minor_units(calc.total),
            }
        message = calc.error_message or f"No duty rate available for HS code {calc.hs_code}"
        return {
            "ddp_status": DdpStatus.UNAVAILABLE,
            "ddp_calculation": calc.model_copy(update={"error_message": message}),
            "calculated_duties": 0,
        }
