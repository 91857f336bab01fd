from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from shipment_batch.schemas.draft import DDPCalculation, PricingOption


@dataclass(frozen=True)
class PricingRequest:
    country: str
    package_length: float
    package_width: float
    package_height: float
    package_weight: float
    hs_code: str | None
    customs_value: int
    product_name: str | None
    product_description: str | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "packageLength": self.package_length,
            "packageWidth": self.package_width,
            "packageHeight": self.package_height,
            "packageWeight": self.package_weight,
            "hsCode": self.hs_code,
            "customsValue": self.customs_value,
            "productName": self.product_name,
            "productDescription": self.product_description,
        }


@dataclass
class PricingResult:
    options: tuple[PricingOption, ...]
    duties: dict[str, Any] | None = None


@dataclass
class DdpLine:
    shipment_index: int
    calculation: DDPCalculation


@dataclass
class BulkDdpResult:
    success: bool
    lines: list[DdpLine]
    total_ddp_amount: Decimal | None = None
    user_balance: int | None = None
    can_afford: bool | None = None
    raw_payload: dict | None = None


@dataclass
class DeductionResult:
    success: bool
    new_balance: int | None
    message: str | None = None


@dataclass
class OrderCreationResult:
    success: bool
    created: list[dict[str, Any]] = field(default_factory=list)
    message: str | None = None
