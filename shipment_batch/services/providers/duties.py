from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import DdpCalculationFailed
from shipment_batch.schemas.draft import DDPCalculation
from shipment_batch.services.providers.http_client import CircuitOpen, ServiceClient
from shipment_batch.services.providers.types import BulkDdpResult, DdpLine


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


class DutyProvider:
    def __init__(self, client: ServiceClient | None = None) -> None:
        self.client = client or ServiceClient(get_settings().ddp_api_base, name="ddp")

    async def calculate_ddp(self, index: int, hs_code: str, customs_value: int) -> DdpLine:
        body = {"shipmentIndex": index, "hsCode": hs_code, "customsValue": customs_value}
        payload = await self._post("/calculate-ddp", body)
        lines = self._parse_lines(payload)
        if not lines:
            raise DdpCalculationFailed(f"Duty service returned no calculation for HS {hs_code}")
        return next((line for line in lines if line.shipment_index == index), lines[0])

    async def calculate_bulk(self, shipments: list[dict[str, Any]], user_id: str) -> BulkDdpResult:
        payload = await self._post("/calculate-bulk-ddp", {"shipments": shipments, "userId": user_id})
        lines = self._parse_lines(payload)
        try:
            total = _decimal(payload["totalDdpAmount"]) if payload.get("totalDdpAmount") is not None else None
        except InvalidOperation as exc:
            raise DdpCalculationFailed("Duty service returned an unreadable total") from exc
        balance = payload.get("userBalance")
        return BulkDdpResult(
            success=bool(payload.get("success", True)),
            lines=lines,
            total_ddp_amount=total,
            user_balance=int(balance) if balance is not None else None,
            can_afford=payload.get("canAfford"),
            raw_payload=payload,
        )

    async def _post(self, path: str, body: dict[str, Any]) -> dict:
        try:
            return await self.client.post_json(path, body)
        except (httpx.HTTPError, ValueError, CircuitOpen) as exc:
            raise DdpCalculationFailed(f"Duty service error: {exc}") from exc

    def _parse_lines(self, payload: dict) -> list[DdpLine]:
        lines = []
        try:
            for raw in payload.get("calculations") or []:
                hs_code = str(raw.get("hsCode") or "")
                total = _decimal(raw.get("total"))
                lines.append(
                    DdpLine(
                        shipment_index=int(raw.get("shipmentIndex", 0)),
                        calculation=DDPCalculation(
                            hs_code=hs_code,
                            customs_value=int(raw.get("customsValue") or 0),
                            duty_percentage=_decimal(raw.get("dutyPercentage")),
                            base_duty=_decimal(raw.get("baseDuty")),
                            processing_fee=_decimal(raw.get("ddpProcessingFee")),
                            total=total,
                            formatted_total=raw.get("formattedTotal") or f"${total:.2f}",
                            available=bool(raw.get("available", True)),
                            error_message=raw.get("message") or raw.get("error"),
                        ),
                    )
                )
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise DdpCalculationFailed(f"Duty service returned an unreadable calculation: {exc}") from exc
        return lines
