import pytest

from shipment_batch.schemas.draft import ShipmentDraft
from shipment_batch.services.insurance import InsuranceCalculator

from conftest import FakeInsuranceProvider


def test_toggle_uses_local_one_percent_rule():
    calculator = InsuranceCalculator(FakeInsuranceProvider())
    draft = ShipmentDraft(customs_value=8000)

    patch = calculator.toggle_patch(draft, True, insurance_value=5000)

    assert patch == {"has_insurance": True, "insurance_value": 5000, "calculated_insurance_cost": 50}


def test_enable_without_value_insures_customs_value():
    calculator = InsuranceCalculator(FakeInsuranceProvider())
    patch = calculator.toggle_patch(ShipmentDraft(customs_value=12345), True)
    assert patch["insurance_value"] == 12345
    assert patch["calculated_insurance_cost"] == 123


def test_local_cost_rounds_half_up():
    calculator = InsuranceCalculator(FakeInsuranceProvider())
    assert calculator.local_cost(150) == 2
    assert calculator.local_cost(149) == 1
    assert calculator.local_cost(0) == 0


@pytest.mark.parametrize("value", [0, -10])
def test_non_positive_value_disables_insurance(value):
    calculator = InsuranceCalculator(FakeInsuranceProvider())
    draft = ShipmentDraft(has_insurance=True, insurance_value=5000, calculated_insurance_cost=50)
    patch = calculator.toggle_patch(draft, True, insurance_value=value)
    assert patch == {"has_insurance": False, "insurance_value": 0, "calculated_insurance_cost": 0}


def test_toggle_off_zeroes_value_and_cost():
    calculator = InsuranceCalculator(FakeInsuranceProvider())
    draft = ShipmentDraft(has_insurance=True, insurance_value=5000, calculated_insurance_cost=50)
    patch = calculator.toggle_patch(draft, False)
    assert patch["insurance_value"] == 0
    assert patch["calculated_insurance_cost"] == 0


@pytest.mark.asyncio
async def test_customs_value_edit_asks_remote_service():
    provider = FakeInsuranceProvider()
    calculator = InsuranceCalculator(provider)
    draft = ShipmentDraft(has_insurance=True, insurance_value=5000, customs_value=5000)

    patch = await calculator.customs_value_patch(draft, 20000)

    assert provider.calls == [20000]
    assert patch == {"insurance_value": 20000, "calculated_insurance_cost": 400}


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_floor():
    calculator = InsuranceCalculator(FakeInsuranceProvider(fail=True))
    assert await calculator.remote_cost(5000) == 100
    assert await calculator.remote_cost(50000) == 500


@pytest.mark.asyncio
async def test_customs_value_edit_without_insurance_is_noop():
    provider = FakeInsuranceProvider()
    calculator = InsuranceCalculator(provider)
    assert await calculator.customs_value_patch(ShipmentDraft(customs_value=100), 900) == {}
    assert provider.calls == []
