from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

import httpx

from shipment_batch.core.config import get_settings
from shipment_batch.core.logging import get_logger
from shipment_batch.schemas.draft import ShipmentDraft
from shipment_batch.services.providers.http_client import CircuitOpen
from shipment_batch.services.providers.insurance import InsuranceProvider

logger = get_logger("insurance")

DISABLED_PATCH = {"has_insurance": False, "insurance_value": 0, "calculated_insurance_cost": 0}


class InsuranceCalculator:
    """Insurance premiums in minor units.

    Two rules exist. Toggling insurance or typing an insured value uses the
    flat local rate. A customs-value edit asks the insurance service and falls
    back to the local rate with a floor when the service is unreachable.
    """

    def __init__(self, provider: InsuranceProvider | None = None) -> None:
        self.settings = get_settings()
        self.provider = provider or InsuranceProvider()
        self.rate = Decimal(self.settings.insurance_rate)

    def local_cost(self, insurance_value: int) -> int:
        if insurance_value <= 0:
            return 0
        return int((Decimal(insurance_value) * self.rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def fallback_cost(self, insurance_value: int) -> int:
        if insurance_value <= 0:
            return 0
        return max(self.local_cost(insurance_value), self.settings.insurance_minimum_fallback)

    async def remote_cost(self, insurance_value: int) -> int:
        if insurance_value <= 0:
            return 0
        try:
            return await self.provider.insurance_cost(insurance_value)
        except (httpx.HTTPError, ValueError, CircuitOpen) as exc:
            cost = self.fallback_cost(insurance_value)
            logger.warning("insurance_remote_failed", insurance_value=insurance_value, fallback_cost=cost, error=str(exc))
            return cost

    def toggle_patch(self, draft: ShipmentDraft, enabled: bool, insurance_value: int | None = None) -> dict[str, Any]:
        if not enabled:
            return dict(DISABLED_PATCH)
        value = insurance_value if insurance_value is not None else (draft.insurance_value or draft.customs_value)
        if value <= 0:
            return dict(DISABLED_PATCH)
        return {"has_insurance": True, "insurance_value": value, "calculated_insurance_cost": self.local_cost(value)}

    async def customs_value_patch(self, draft: ShipmentDraft, customs_value: int) -> dict[str, Any]:
        if not draft.has_insurance:
            return {}
        if customs_value <= 0:
            return dict(DISABLED_PATCH)
        cost = await self.remote_cost(customs_value)
        return {"insurance_value": customs_value, "calculated_insurance_cost": cost}
