import pytest

from shipment_batch.core.errors import (
    BatchNotFound,
    ComplianceViolation,
    InvalidServiceOption,
    NothingToSubmit,
    StaleDdpQuote,
    TemplateNotFound,
)
from shipment_batch.models.enums import DdpStatus, ShippingTerms
from shipment_batch.schemas.draft import DraftUpdate
from shipment_batch.schemas.template import DimensionTemplate
from shipment_batch.services.batch import BatchRegistry, BatchSession


def _session(providers, rows):
    session = BatchSession("u1", **providers)
    session.load(rows)
    return session


def test_load_normalizes_rows(providers, row_factory):
    session = _session(
        providers,
        [
            row_factory(shippingTerms="DDP (duties paid)", hsCode="6109.10.00", hasInsurance=True),
            row_factory(receiverName="Hans", receiverCountry="Germany", packageLength="", customsValue=""),
        ],
    )
    first, second = session.store.snapshot().drafts

    assert (first.row_index, second.row_index) == (1, 2)
    assert first.shipping_terms is ShippingTerms.DDP
    assert first.hs_code_clean == "61091000"
    assert (first.volumetric_weight, first.billable_weight) == (0.8, 1.28)
    assert (first.insurance_value, first.calculated_insurance_cost) == (5000, 50)
    assert second.length is None
    assert second.customs_value == 0


def test_loading_new_file_replaces_drafts(providers, row_factory):
    session = _session(providers, [row_factory(), row_factory(orderReference="A-2")])
    old_ids = {draft.id for draft in session.store.snapshot()}

    session.load([row_factory(orderReference="B-1")])

    drafts = session.store.snapshot().drafts
    assert len(drafts) == 1
    assert drafts[0].id not in old_ids


@pytest.mark.asyncio
async def test_dimension_edit_recomputes_weights_and_reprices(providers, row_factory):
    session = _session(providers, [row_factory()])
    draft = session.store.snapshot().drafts[0]

    updated = await session.edit(draft.id, DraftUpdate(length=60, width=40, height=40, weight=2))

    assert updated.billable_weight == 19.2
    assert updated.selected_service_option.id == "eco"
    assert providers["pricing_provider"].requests[-1].package_weight == 19.2
    assert session.events == []


@pytest.mark.asyncio
async def test_dap_edit_does_not_trigger_ddp(providers, row_factory):
    session = _session(providers, [row_factory(shippingTerms="dap")])
    draft = session.store.snapshot().drafts[0]

    await session.edit(draft.id, DraftUpdate(hs_code="620520", customs_value=7000))

    assert providers["duty_provider"].single_calls == []
    assert session.store.get(draft.id).ddp_status is DdpStatus.IDLE


@pytest.mark.asyncio
async def test_switching_to_ddp_triggers_calculation(providers, row_factory):
    session = _session(providers, [row_factory()])
    draft = session.store.snapshot().drafts[0]

    updated = await session.edit(draft.id, DraftUpdate(shipping_terms="ddp"))

    assert providers["duty_provider"].single_calls == [(1, "610910", 5000)]
    assert updated.ddp_status is DdpStatus.AVAILABLE
    assert updated.calculated_duties == 1250


@pytest.mark.asyncio
async def test_unrelated_edit_keeps_ddp_result(providers, row_factory):
    session = _session(providers, [row_factory(shippingTerms="ddp")])
    draft = session.store.snapshot().drafts[0]
    await session.edit(draft.id, DraftUpdate(hs_code="610910.00"))
    calls = len(providers["duty_provider"].single_calls)

    updated = await session.edit(draft.id, DraftUpdate(receiver_city="Dallas", tax_id="EIN"))

    assert len(providers["duty_provider"].single_calls) == calls
    assert updated.ddp_status is DdpStatus.AVAILABLE


@pytest.mark.asyncio
async def test_customs_value_edit_uses_remote_insurance(providers, row_factory):
    session = _session(providers, [row_factory(hasInsurance=True)])
    draft = session.store.snapshot().drafts[0]

    updated = await session.edit(draft.id, DraftUpdate(customs_value=20000))

    assert providers["insurance_provider"].calls == [20000]
    assert (updated.insurance_value, updated.calculated_insurance_cost) == (20000, 400)


@pytest.mark.asyncio
async def test_insurance_toggle_uses_local_rule(providers, row_factory):
    session = _session(providers, [row_factory()])
    draft = session.store.snapshot().drafts[0]

    updated = await session.edit(draft.id, DraftUpdate(has_insurance=True, insurance_value=5000))
    assert updated.calculated_insurance_cost == 50
    assert providers["insurance_provider"].calls == []

    updated = await session.edit(draft.id, DraftUpdate(has_insurance=False))
    assert (updated.insurance_value, updated.calculated_insurance_cost) == (0, 0)


@pytest.mark.asyncio
async def test_template_application(providers, row_factory):
    session = _session(providers, [row_factory()])
    draft = session.store.snapshot().drafts[0]
    await session.templates.save("u1", DimensionTemplate(name="Mailer", length=30, width=20, height=5, weight=0.4))

    updated = await session.apply_template(draft.id, "Mailer")

    assert (updated.length, updated.width, updated.height, updated.weight) == (30, 20, 5, 0.4)
    assert updated.billable_weight == 0.6
    assert updated.selected_template == "Mailer"
    assert updated.selected_service_option is not None

    with pytest.raises(TemplateNotFound):
        await session.apply_template(draft.id, "Missing")


@pytest.mark.asyncio
async def test_service_selection_must_be_a_current_option(providers, row_factory):
    session = _session(providers, [row_factory()])
    draft = session.store.snapshot().drafts[0]
    await session.recalculate()

    assert session.select_service(draft.id, "express").selected_service_option.id == "express"
    with pytest.raises(InvalidServiceOption):
        session.select_service(draft.id, "overnight")


@pytest.mark.asyncio
async def test_recalculate_selected_only(providers, row_factory):
    session = _session(providers, [row_factory(), row_factory(orderReference="A-2")])
    first, second = session.store.snapshot().drafts
    session.set_selection([second.id])

    summary = await session.recalculate(selected_only=True)

    assert summary.requested == 1
    assert session.store.get(first.id).pricing_options == ()
    assert session.events[-1].kind == "pricing_recalculated"


@pytest.mark.asyncio
async def test_submission_blocked_by_missing_tax_id(providers, row_factory):
    session = _session(providers, [row_factory(), row_factory(receiverCountry="Germany", taxId="")])
    await session.recalculate()

    with pytest.raises(ComplianceViolation) as excinfo:
        await session.submit()

    assert excinfo.value.details[0]["row_index"] == 2
    assert providers["order_provider"].batches == []


@pytest.mark.asyncio
async def test_submission_sends_finalized_drafts(providers, row_factory):
    session = _session(
        providers,
        [
            row_factory(),
            row_factory(orderReference="A-2", receiverCountry="Germany", taxId="IM2760000742"),
            row_factory(orderReference="A-3", receiverCountry="Italy", skipImport=True),
            row_factory(orderReference="A-4", packageHeight=None),
        ],
    )
    ids = [draft.id for draft in session.store.snapshot()]
    session.set_selection(ids[:2])
    await session.recalculate(selected_only=True)

    result = await session.submit()

    assert result.submitted_ids == ids[:2]
    assert result.unpriced_ids == [ids[3]]
    ((user_id, drafts),) = providers["order_provider"].batches
    assert user_id == "u1"
    assert [draft.order_reference for draft in drafts] == ["A-1", "A-2"]
    assert session.events[-1].kind == "batch_submitted"


@pytest.mark.asyncio
async def test_nothing_to_submit(providers, row_factory):
    session = _session(providers, [row_factory()])
    with pytest.raises(NothingToSubmit):
        await session.submit()


@pytest.mark.asyncio
async def test_ddp_confirm_requires_current_quote(providers, row_factory):
    session = _session(providers, [row_factory(shippingTerms="ddp")])
    draft = session.store.snapshot().drafts[0]
    quote = await session.quote_ddp()

    await session.edit(draft.id, DraftUpdate(customs_value=8000))

    with pytest.raises(StaleDdpQuote):
        await session.confirm_ddp(quote.quote_id)


@pytest.mark.asyncio
async def test_ddp_confirm_records_event(providers, row_factory):
    session = _session(providers, [row_factory(shippingTerms="ddp")])
    quote = await session.quote_ddp()

    result = await session.confirm_ddp(quote.quote_id)

    assert result.new_balance == 10_000 - 1250
    assert session.events[-1].kind == "ddp_deducted"


def test_registry_scopes_batches_to_user(providers, row_factory):
    registry = BatchRegistry(**providers)
    session = registry.create("u1", [row_factory()])

    assert registry.get(session.id, "u1") is session
    with pytest.raises(BatchNotFound):
        registry.get(session.id, "u2")

    registry.discard(session.id, "u1")
    with pytest.raises(BatchNotFound):
        registry.get(session.id, "u1")
