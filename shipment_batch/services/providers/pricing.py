from __future__ import annotations

from typing import Any

import httpx

from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import PricingUnavailable
from shipment_batch.models.enums import ServiceType
from shipment_batch.schemas.draft import PricingOption
from shipment_batch.services.providers.http_client import CircuitOpen, ServiceClient
from shipment_batch.services.providers.types import PricingRequest, PricingResult


class PricingProvider:
    def __init__(self, client: ServiceClient | None = None) -> None:
        self.client = client or ServiceClient(get_settings().pricing_api_base, name="pricing")

    async def price(self, request: PricingRequest) -> PricingResult:
        try:
            payload = await self.client.post_json("/calculate-price", request.to_payload())
        except (httpx.HTTPError, ValueError, CircuitOpen) as exc:
            raise PricingUnavailable(f"Pricing service error: {exc}") from exc

        try:
            if not payload.get("success", True):
                raise PricingUnavailable(payload.get("message") or "Pricing service returned no rates")
            raw_options = payload.get("options") or payload.get("prices") or []
            options = tuple(self._to_option(raw, index) for index, raw in enumerate(raw_options))
            duties = payload.get("duties")
            if duties is not None and not isinstance(duties, dict):
                raise TypeError("duties must be an object")
        except (TypeError, ValueError, AttributeError, KeyError) as exc:
            raise PricingUnavailable(f"Pricing service returned an unreadable option: {exc}") from exc

        if not options:
            raise PricingUnavailable("No shipping options available for this destination")
        return PricingResult(options=options, duties=duties)

    def _to_option(self, raw: dict[str, Any], index: int) -> PricingOption:
        total = raw.get("totalPrice", raw.get("price", 0))
        excluding = raw.get("priceExcludingInsurance", raw.get("shippingPrice"))
        days = raw.get("estimatedDeliveryDays", raw.get("estimatedDays"))
        return PricingOption(
            id=str(raw.get("id") or f"option_{index}"),
            display_name=raw.get("displayName") or raw.get("name") or "Shipping",
            service_type=self._service_type(raw.get("serviceType") or raw.get("serviceLevel") or raw.get("name")),
            total_price=int(round(float(total))),
            price_excluding_insurance=int(round(float(excluding))) if excluding is not None else None,
            estimated_delivery_days=str(days) if days is not None else None,
            carrier=raw.get("carrier") or raw.get("providerName"),
        )

    def _service_type(self, value: Any) -> ServiceType:
        text = str(value or "").upper()
        if "ECO" in text or "EKO" in text:
            return ServiceType.ECO
        if "EXPRESS" in text or "PRIORITY" in text:
            return ServiceType.EXPRESS
        return ServiceType.STANDARD
