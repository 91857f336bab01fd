from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shipment_batch.models.enums import DdpStatus, ServiceType, ShippingTerms, TaxIdType
from shipment_batch.schemas.common import FrozenSchema

HS_CODE_MIN_DIGITS = 6
HS_CODE_MAX_DIGITS = 10


def clean_hs_code(value: str | None) -> str | None:
    if not value:
        return None
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    if HS_CODE_MIN_DIGITS <= len(digits) <= HS_CODE_MAX_DIGITS:
        return digits
    return None


def parse_shipping_terms(value: Any) -> ShippingTerms:
    if isinstance(value, ShippingTerms):
        return value
    text = str(value or "").strip().lower()
    if "ddp" in text:
        return ShippingTerms.DDP
    if "ddu" in text:
        return ShippingTerms.DDU
    return ShippingTerms.DAP


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class PricingOption(FrozenSchema):
    id: str
    display_name: str
    service_type: ServiceType = ServiceType.STANDARD
    total_price: int
    price_excluding_insurance: int | None = None
    estimated_delivery_days: str | None = None
    carrier: str | None = None


class DDPCalculation(FrozenSchema):
    hs_code: str
    customs_value: int
    duty_percentage: Decimal = Decimal("0")
    base_duty: Decimal = Decimal("0")
    processing_fee: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    formatted_total: str | None = None
    available: bool = True
    error_message: str | None = None


class ShipmentDraft(FrozenSchema):
    """One row of an uploaded batch.

    Drafts are immutable; the draft store replaces them through ``model_copy``
    patches so concurrent readers always see a consistent snapshot.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    row_index: int = 0
    order_reference: str | None = None

    receiver_name: str = ""
    receiver_address: str | None = None
    receiver_address2: str | None = None
    receiver_city: str | None = None
    receiver_state: str | None = None
    receiver_country: str = ""
    receiver_postal_code: str | None = None
    receiver_phone: str | None = None
    receiver_email: str | None = None

    length: float | None = None
    width: float | None = None
    height: float | None = None
    weight: float | None = None
    volumetric_weight: float = 0.0
    billable_weight: float = 0.0

    hs_code: str | None = None
    hs_code_clean: str | None = None
    customs_value: int = 0
    product_name: str | None = None
    product_description: str | None = None
    shipping_terms: ShippingTerms = ShippingTerms.DAP

    has_insurance: bool = False
    insurance_value: int = 0
    calculated_insurance_cost: int = 0

    pricing_options: tuple[PricingOption, ...] = ()
    selected_service_option: PricingOption | None = None
    pricing_error: str | None = None
    is_recalculating: bool = False
    duties: dict[str, Any] | None = None

    ddp_status: DdpStatus = DdpStatus.IDLE
    ddp_calculation: DDPCalculation | None = None
    calculated_duties: int = 0

    tax_id: str | None = None

    skip_import: bool = False
    selected: bool = False
    selected_template: str | None = None

    @property
    def identity_key(self) -> tuple[str, str]:
        return self.receiver_name, self.order_reference or ""

    @property
    def dimensions_complete(self) -> bool:
        return all(value for value in (self.length, self.width, self.height, self.weight))


class RawShipmentRow(BaseModel):
    """A parsed spreadsheet or marketplace row, before normalization.

    Upstream parsers are inconsistent about naming (``length`` vs
    ``packageLength``, ``receiverAddress1`` vs ``receiverAddress``), so every
    field accepts the known spellings and collapses them to one name.
    """

    model_config = ConfigDict(extra="ignore")

    order_reference: str | None = Field(
        default=None, validation_alias=AliasChoices("order_reference", "orderReference", "orderNumber", "orderId")
    )
    receiver_name: str = Field(default="", validation_alias=AliasChoices("receiver_name", "receiverName", "name"))
    receiver_address: str | None = Field(
        default=None, validation_alias=AliasChoices("receiver_address", "receiverAddress", "receiverAddress1")
    )
    receiver_address2: str | None = Field(
        default=None, validation_alias=AliasChoices("receiver_address2", "receiverAddress2")
    )
    receiver_city: str | None = Field(default=None, validation_alias=AliasChoices("receiver_city", "receiverCity"))
    receiver_state: str | None = Field(default=None, validation_alias=AliasChoices("receiver_state", "receiverState"))
    receiver_country: str = Field(
        default="", validation_alias=AliasChoices("receiver_country", "receiverCountry", "country")
    )
    receiver_postal_code: str | None = Field(
        default=None, validation_alias=AliasChoices("receiver_postal_code", "receiverPostalCode", "postalCode")
    )
    receiver_phone: str | None = Field(default=None, validation_alias=AliasChoices("receiver_phone", "receiverPhone"))
    receiver_email: str | None = Field(default=None, validation_alias=AliasChoices("receiver_email", "receiverEmail"))

    length: float | None = Field(default=None, validation_alias=AliasChoices("length", "packageLength", "package_length"))
    width: float | None = Field(default=None, validation_alias=AliasChoices("width", "packageWidth", "package_width"))
    height: float | None = Field(default=None, validation_alias=AliasChoices("height", "packageHeight", "package_height"))
    weight: float | None = Field(default=None, validation_alias=AliasChoices("weight", "packageWeight", "package_weight"))

    hs_code: str | None = Field(default=None, validation_alias=AliasChoices("hs_code", "hsCode", "gtip"))
    customs_value: int = Field(default=0, ge=0, validation_alias=AliasChoices("customs_value", "customsValue"))
    product_name: str | None = Field(
        default=None, validation_alias=AliasChoices("product_name", "productName", "packageContents")
    )
    product_description: str | None = Field(
        default=None, validation_alias=AliasChoices("product_description", "productDescription", "description")
    )
    shipping_terms: ShippingTerms = Field(
        default=ShippingTerms.DAP, validation_alias=AliasChoices("shipping_terms", "shippingTerms", "incoterms")
    )
    has_insurance: bool = Field(default=False, validation_alias=AliasChoices("has_insurance", "hasInsurance", "isInsured"))
    insurance_value: int = Field(default=0, ge=0, validation_alias=AliasChoices("insurance_value", "insuranceValue"))
    tax_id: str | None = Field(default=None, validation_alias=AliasChoices("tax_id", "taxId", "iossNumber", "ioss_number"))
    skip_import: bool = Field(default=False, validation_alias=AliasChoices("skip_import", "skipImport"))

    @field_validator("length", "width", "height", "weight", mode="before")
    @classmethod
    def blank_dimensions(cls, value: Any):
        return _blank_to_none(value)

    @field_validator("customs_value", "insurance_value", mode="before")
    @classmethod
    def default_money(cls, value: Any):
        value = _blank_to_none(value)
        return 0 if value is None else value

    @field_validator("shipping_terms", mode="before")
    @classmethod
    def normalize_terms(cls, value: Any):
        return parse_shipping_terms(value)

    @field_validator("hs_code", "tax_id", "order_reference", mode="before")
    @classmethod
    def stringify(cls, value: Any):
        value = _blank_to_none(value)
        if value is None:
            return None
        return str(value).strip()

    def to_draft(self, row_index: int) -> ShipmentDraft:
        data = self.model_dump()
        return ShipmentDraft(**data, row_index=row_index, hs_code_clean=clean_hs_code(self.hs_code))


class DraftUpdate(BaseModel):
    receiver_name: str | None = None
    receiver_address: str | None = None
    receiver_address2: str | None = None
    receiver_city: str | None = None
    receiver_state: str | None = None
    receiver_country: str | None = None
    receiver_postal_code: str | None = None
    receiver_phone: str | None = None
    receiver_email: str | None = None

    length: float | None = Field(default=None, gt=0)
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    weight: float | None = Field(default=None, gt=0)

    hs_code: str | None = None
    customs_value: int | None = Field(default=None, ge=0)
    product_name: str | None = None
    product_description: str | None = None
    shipping_terms: ShippingTerms | None = None

    has_insurance: bool | None = None
    insurance_value: int | None = Field(default=None, ge=0)
    tax_id: str | None = None

    @field_validator("shipping_terms", mode="before")
    @classmethod
    def normalize_terms(cls, value: Any):
        if value is None:
            return None
        return parse_shipping_terms(value)

    @field_validator("hs_code", mode="before")
    @classmethod
    def normalize_hs_code(cls, value: Any):
        if value is None:
            return None
        return str(value).strip()


class ValidationIssue(FrozenSchema):
    row_index: int
    draft_id: str
    receiver_name: str
    country_code: str
    required_type: TaxIdType
    message: str
