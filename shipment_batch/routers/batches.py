from __future__ import annotations

from fastapi import APIRouter, Depends

from shipment_batch.core.deps import get_batch, get_registry, get_user_id
from shipment_batch.schemas.batch import (
    BatchCreate,
    BatchEventRead,
    BatchRead,
    DdpConfirm,
    DdpQuoteLineRead,
    DdpQuoteRead,
    DeductionRead,
    RecalculateRequest,
    RecalculationRead,
    SelectionUpdate,
    ServiceSelect,
    SkipUpdate,
    SubmissionRead,
    TemplateApply,
    ValidationRead,
)
from shipment_batch.schemas.draft import DraftUpdate, ShipmentDraft
from shipment_batch.services.batch import BatchRegistry, BatchSession

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", response_model=BatchRead)
async def create_batch(
    payload: BatchCreate,
    user_id: str = Depends(get_user_id),
    batches: BatchRegistry = Depends(get_registry),
):
    session = batches.create(user_id, payload.rows)
    return _batch_read(session)


@router.get("/{batch_id}", response_model=BatchRead)
async def get_batch_detail(session: BatchSession = Depends(get_batch)):
    return _batch_read(session)


@router.put("/{batch_id}/rows", response_model=BatchRead)
async def reload_rows(payload: BatchCreate, session: BatchSession = Depends(get_batch)):
    session.load(payload.rows)
    return _batch_read(session)


@router.delete("/{batch_id}")
async def discard_batch(
    batch_id: str,
    user_id: str = Depends(get_user_id),
    batches: BatchRegistry = Depends(get_registry),
):
    batches.discard(batch_id, user_id)
    return {"status": "ok"}


@router.patch("/{batch_id}/drafts/{draft_id}", response_model=ShipmentDraft)
async def edit_draft(draft_id: str, payload: DraftUpdate, session: BatchSession = Depends(get_batch)):
    return await session.edit(draft_id, payload)


@router.post("/{batch_id}/drafts/{draft_id}/skip", response_model=ShipmentDraft)
async def skip_draft(draft_id: str, payload: SkipUpdate, session: BatchSession = Depends(get_batch)):
    return session.set_skip(draft_id, payload.skip_import)


@router.post("/{batch_id}/drafts/{draft_id}/template", response_model=ShipmentDraft)
async def apply_template(draft_id: str, payload: TemplateApply, session: BatchSession = Depends(get_batch)):
    return await session.apply_template(draft_id, payload.template_name)


@router.post("/{batch_id}/drafts/{draft_id}/service", response_model=ShipmentDraft)
async def select_service(draft_id: str, payload: ServiceSelect, session: BatchSession = Depends(get_batch)):
    return session.select_service(draft_id, payload.option_id)


@router.post("/{batch_id}/selection", response_model=BatchRead)
async def update_selection(payload: SelectionUpdate, session: BatchSession = Depends(get_batch)):
    session.set_selection(payload.draft_ids, payload.selected)
    return _batch_read(session)


@router.post("/{batch_id}/recalculate", response_model=RecalculationRead)
async def recalculate(payload: RecalculateRequest, session: BatchSession = Depends(get_batch)):
    summary = await session.recalculate(selected_only=payload.selected_only, mode=payload.mode)
    if summary is None:
        return RecalculationRead(started=False)
    return RecalculationRead(
        started=True,
        mode=summary.mode,
        requested=summary.requested,
        succeeded=summary.succeeded,
        failed=summary.failed,
        stale=summary.stale,
        merge=summary.merge,
        version=summary.version,
    )


@router.post("/{batch_id}/ddp/quote", response_model=DdpQuoteRead)
async def quote_ddp(session: BatchSession = Depends(get_batch)):
    quote = await session.quote_ddp()
    return DdpQuoteRead(
        quote_id=quote.quote_id,
        total_ddp_amount=quote.total_ddp_amount,
        total_minor=quote.total_minor,
        user_balance=quote.user_balance,
        can_afford=quote.can_afford,
        shortfall=quote.shortfall,
        lines=[
            DdpQuoteLineRead(
                draft_id=line.draft_id,
                row_index=line.row_index,
                receiver_name=line.receiver_name,
                hs_code=line.hs_code,
                customs_value=line.customs_value,
                total=line.total,
                available=line.available,
            )
            for line in quote.lines
        ],
    )


@router.post("/{batch_id}/ddp/confirm", response_model=DeductionRead)
async def confirm_ddp(payload: DdpConfirm, session: BatchSession = Depends(get_batch)):
    result = await session.confirm_ddp(payload.quote_id)
    return DeductionRead(success=result.success, new_balance=result.new_balance, message=result.message)


@router.post("/{batch_id}/validate", response_model=ValidationRead)
async def validate_batch(session: BatchSession = Depends(get_batch)):
    issues = session.validate()
    return ValidationRead(valid=not issues, issues=issues)


@router.post("/{batch_id}/submit", response_model=SubmissionRead)
async def submit_batch(session: BatchSession = Depends(get_batch)):
    result = await session.submit()
    return SubmissionRead(
        success=result.created.success,
        submitted_ids=result.submitted_ids,
        unpriced_ids=result.unpriced_ids,
        orders=result.created.created,
        message=result.created.message,
    )


def _batch_read(session: BatchSession) -> BatchRead:
    snapshot = session.store.snapshot()
    return BatchRead(
        id=session.id,
        version=snapshot.version,
        pricing_state=session.pricing.state,
        balance=session.ddp.balance,
        drafts=list(snapshot.drafts),
        events=[
            BatchEventRead(kind=event.kind, message=event.message, data=event.data, created_at=event.created_at)
            for event in session.events
        ],
    )
