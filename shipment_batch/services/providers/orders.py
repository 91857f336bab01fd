from __future__ import annotations

from typing import Any

import httpx

from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import OrderSubmissionFailed
from shipment_batch.schemas.draft import ShipmentDraft
from shipment_batch.services.countries import country_name_to_code
from shipment_batch.services.providers.http_client import CircuitOpen, ServiceClient
from shipment_batch.services.providers.types import OrderCreationResult


class OrderProvider:
    def __init__(self, client: ServiceClient | None = None) -> None:
        self.client = client or ServiceClient(get_settings().orders_api_base, name="orders")

    async def create_batch(self, user_id: str, drafts: list[ShipmentDraft]) -> OrderCreationResult:
        body = {"userId": user_id, "shipments": [self._to_payload(draft) for draft in drafts]}
        try:
            payload = await self.client.post_json("/shipments/bulk", body, retry=False)
        except (httpx.HTTPError, ValueError, CircuitOpen) as exc:
            raise OrderSubmissionFailed(f"Order service error: {exc}") from exc
        if not payload.get("success", True):
            raise OrderSubmissionFailed(payload.get("message") or "Order service rejected the batch")
        return OrderCreationResult(
            success=True,
            created=list(payload.get("shipments") or []),
            message=payload.get("message"),
        )

    def _to_payload(self, draft: ShipmentDraft) -> dict[str, Any]:
        option = draft.selected_service_option
        ddp = draft.ddp_calculation
        return {
            "orderReference": draft.order_reference,
            "receiverName": draft.receiver_name,
            "receiverAddress": draft.receiver_address,
            "receiverAddress2": draft.receiver_address2,
            "receiverCity": draft.receiver_city,
            "receiverState": draft.receiver_state,
            "receiverCountry": country_name_to_code(draft.receiver_country) or draft.receiver_country,
            "receiverPostalCode": draft.receiver_postal_code,
            "receiverPhone": draft.receiver_phone,
            "receiverEmail": draft.receiver_email,
            "packageLength": draft.length,
            "packageWidth": draft.width,
            "packageHeight": draft.height,
            "packageWeight": draft.weight,
            "billableWeight": draft.billable_weight,
            "hsCode": draft.hs_code_clean,
            "customsValue": draft.customs_value,
            "productName": draft.product_name,
            "productDescription": draft.product_description,
            "shippingTerms": draft.shipping_terms.value,
            "taxId": draft.tax_id.strip() if draft.tax_id else None,
            "isInsured": draft.has_insurance,
            "insuranceValue": draft.insurance_value,
            "insuranceCost": draft.calculated_insurance_cost,
            "selectedService": option.model_dump(mode="json") if option else None,
            "totalPrice": option.total_price if option else None,
            "ddpDutiesAmount": draft.calculated_duties,
            "ddpProcessingFee": str(ddp.processing_fee) if ddp and ddp.available else None,
        }
