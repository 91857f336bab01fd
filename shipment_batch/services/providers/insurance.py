from __future__ import annotations

from shipment_batch.core.config import get_settings
from shipment_batch.services.providers.http_client import ServiceClient


class InsuranceProvider:
    def __init__(self, client: ServiceClient | None = None) -> None:
        self.client = client or ServiceClient(get_settings().insurance_api_base, name="insurance")

    async def insurance_cost(self, insurance_value: int) -> int:
        payload = await self.client.get_json("/insurance/calculate", params={"insuranceValue": insurance_value})
        cost = payload.get("cost")
        if cost is None:
            raise ValueError("Insurance service response has no cost")
        return int(round(float(cost)))
