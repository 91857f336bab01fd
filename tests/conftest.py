import asyncio
from decimal import Decimal

import httpx
import pytest

from shipment_batch.core.errors import (
    BalanceUnavailable,
    DdpCalculationFailed,
    DdpDeductionFailed,
    OrderSubmissionFailed,
    PricingUnavailable,
)
from shipment_batch.models.enums import ServiceType
from shipment_batch.schemas.draft import DDPCalculation, PricingOption, RawShipmentRow
from shipment_batch.services.providers.types import (
    BulkDdpResult,
    DdpLine,
    DeductionResult,
    OrderCreationResult,
    PricingResult,
)
from shipment_batch.services.templates import TemplateStore


class FakePricingProvider:
    def __init__(self, failing_countries=(), gate: asyncio.Event | None = None) -> None:
        self.requests = []
        self.failing_countries = set(failing_countries)
        self.gate = gate
        self.started = asyncio.Event()

    async def price(self, request):
        self.requests.append(request)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if request.country in self.failing_countries:
            raise PricingUnavailable(f"No rates to {request.country}")
        base = int(request.package_weight * 1000)
        return PricingResult(
            options=(
                PricingOption(id="eco", display_name="Economy", service_type=ServiceType.ECO, total_price=base),
                PricingOption(
                    id="express", display_name="Express", service_type=ServiceType.EXPRESS, total_price=base * 2
                ),
            ),
            duties={"country": request.country},
        )


class FakeInsuranceProvider:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    async def insurance_cost(self, insurance_value):
        self.calls.append(insurance_value)
        if self.fail:
            raise httpx.ConnectError("insurance service down")
        return insurance_value * 2 // 100


class FakeDutyProvider:
    def __init__(
        self,
        total: str = "12.50",
        available: bool = True,
        gate: asyncio.Event | None = None,
        fail: bool = False,
        bulk_success: bool = True,
    ) -> None:
        self.total = Decimal(total)
        self.available = available
        self.gate = gate
        self.fail = fail
        self.bulk_success = bulk_success
        self.single_calls = []
        self.bulk_calls = []

    def _line(self, index, hs_code, customs_value):
        return DdpLine(
            shipment_index=index,
            calculation=DDPCalculation(
                hs_code=hs_code,
                customs_value=customs_value,
                duty_percentage=Decimal("5"),
                base_duty=self.total - Decimal("4.50"),
                processing_fee=Decimal("4.50"),
                total=self.total,
                formatted_total=f"${self.total:.2f}",
                available=self.available,
            ),
        )

    async def calculate_ddp(self, index, hs_code, customs_value):
        self.single_calls.append((index, hs_code, customs_value))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise DdpCalculationFailed(f"Duty service error for HS {hs_code}")
        return self._line(index, hs_code, customs_value)

    async def calculate_bulk(self, shipments, user_id):
        self.bulk_calls.append((shipments, user_id))
        if self.fail:
            raise DdpCalculationFailed("Duty service error: 503")
        lines = [self._line(s["shipmentIndex"], s["hsCode"], s["customsValue"]) for s in shipments]
        return BulkDdpResult(success=self.bulk_success, lines=lines)


class FakeBalanceProvider:
    def __init__(self, balance: int = 10_000, fail: bool = False, unavailable: bool = False) -> None:
        self.balance = balance
        self.fail = fail
        self.unavailable = unavailable
        self.deductions = []

    async def get_balance(self, user_id):
        if self.unavailable:
            raise BalanceUnavailable("Balance service error: connection refused")
        return self.balance

    async def deduct_ddp_balance(self, user_id, ddp_amount, shipment_details, idempotency_key):
        self.deductions.append((user_id, ddp_amount, shipment_details, idempotency_key))
        if self.fail:
            raise DdpDeductionFailed("Balance service error: 503")
        self.balance -= int(ddp_amount * 100)
        return DeductionResult(success=True, new_balance=self.balance)


class FakeOrderProvider:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.batches = []

    async def create_batch(self, user_id, drafts):
        self.batches.append((user_id, list(drafts)))
        if self.fail:
            raise OrderSubmissionFailed("Order service error")
        return OrderCreationResult(
            success=True,
            created=[{"id": f"shp_{draft.row_index}", "orderReference": draft.order_reference} for draft in drafts],
        )


class FakeCache:
    def __init__(self) -> None:
        self.values = {}
        self.hashes = {}

    async def get_json(self, key):
        return self.values.get(key)

    async def set_json(self, key, payload, ttl_seconds=None):
        self.values[key] = payload

    async def delete(self, key):
        self.values.pop(key, None)

    async def hash_get_all(self, key):
        return dict(self.hashes.get(key, {}))

    async def hash_set(self, key, field, payload):
        self.hashes.setdefault(key, {})[field] = payload

    async def hash_delete(self, key, field):
        return 1 if self.hashes.get(key, {}).pop(field, None) is not None else 0


def make_row(**overrides) -> RawShipmentRow:
    data = {
        "receiverName": "Jane Doe",
        "orderReference": "A-1",
        "receiverCountry": "United States",
        "receiverCity": "Austin",
        "packageLength": 25,
        "packageWidth": 20,
        "packageHeight": 8,
        "packageWeight": 1.28,
        "hsCode": "6109.10",
        "customsValue": 5000,
        "shippingTerms": "DAP",
    }
    data.update(overrides)
    return RawShipmentRow.model_validate(data)


@pytest.fixture
def providers():
    cache = FakeCache()
    return {
        "pricing_provider": FakePricingProvider(),
        "insurance_provider": FakeInsuranceProvider(),
        "duty_provider": FakeDutyProvider(),
        "balance_provider": FakeBalanceProvider(),
        "order_provider": FakeOrderProvider(),
        "template_store": TemplateStore(cache=cache),
    }


@pytest.fixture
def row_factory():
    return make_row
