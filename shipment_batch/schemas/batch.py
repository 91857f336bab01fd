from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from shipment_batch.models.enums import EngineState, RecalcMode
from shipment_batch.schemas.draft import RawShipmentRow, ShipmentDraft, ValidationIssue


class BatchCreate(BaseModel):
    rows: list[RawShipmentRow] = Field(min_length=1)


class BatchEventRead(BaseModel):
    kind: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class BatchRead(BaseModel):
    id: str
    version: int
    pricing_state: EngineState
    balance: int | None = None
    drafts: list[ShipmentDraft]
    events: list[BatchEventRead] = Field(default_factory=list)


class SkipUpdate(BaseModel):
    skip_import: bool


class TemplateApply(BaseModel):
    template_name: str = Field(min_length=1)


class ServiceSelect(BaseModel):
    option_id: str = Field(min_length=1)


class SelectionUpdate(BaseModel):
    draft_ids: list[str] | None = None
    selected: bool = True


class RecalculateRequest(BaseModel):
    selected_only: bool = False
    mode: RecalcMode = RecalcMode.INTERACTIVE


class RecalculationRead(BaseModel):
    started: bool
    mode: RecalcMode | None = None
    requested: int = 0
    succeeded: int = 0
    failed: int = 0
    stale: int = 0
    merge: str | None = None
    version: int | None = None


class DdpQuoteLineRead(BaseModel):
    draft_id: str
    row_index: int
    receiver_name: str
    hs_code: str
    customs_value: int
    total: Decimal
    available: bool


class DdpQuoteRead(BaseModel):
    quote_id: str
    total_ddp_amount: Decimal
    total_minor: int
    user_balance: int
    can_afford: bool
    shortfall: int
    lines: list[DdpQuoteLineRead]


class DdpConfirm(BaseModel):
    quote_id: str


class DeductionRead(BaseModel):
    success: bool
    new_balance: int | None = None
    message: str | None = None


class ValidationRead(BaseModel):
    valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)


class SubmissionRead(BaseModel):
    success: bool
    submitted_ids: list[str]
    unpriced_ids: list[str] = Field(default_factory=list)
    orders: list[dict[str, Any]] = Field(default_factory=list)
    message: str | None = None
