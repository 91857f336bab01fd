from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from shipment_batch.core.config import get_settings
from shipment_batch.schemas.draft import ShipmentDraft

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class WeightResult:
    volumetric_weight: float
    billable_weight: float


def _or_default(value: float | None, default: float) -> Decimal:
    if value is None or value <= 0:
        return Decimal(str(default))
    return Decimal(str(value))


def calculate_weights(
    length: float | None,
    width: float | None,
    height: float | None,
    weight: float | None,
) -> WeightResult:
    settings = get_settings()
    l = _or_default(length, settings.default_length_cm)
    w = _or_default(width, settings.default_width_cm)
    h = _or_default(height, settings.default_height_cm)
    actual = _or_default(weight, settings.default_weight_kg)

    volumetric = (l * w * h / Decimal(settings.volumetric_divisor)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    billable = max(actual, volumetric).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return WeightResult(volumetric_weight=float(volumetric), billable_weight=float(billable))


def weight_patch(draft: ShipmentDraft, **overrides: Any) -> dict[str, float]:
    """Derived weight fields for ``draft`` with any pending dimension edits applied."""
    values = {
        "length": draft.length,
        "width": draft.width,
        "height": draft.height,
        "weight": draft.weight,
    }
    values.update({key: value for key, value in overrides.items() if key in values})
    result = calculate_weights(values["length"], values["width"], values["height"], values["weight"])
    return {"volumetric_weight": result.volumetric_weight, "billable_weight": result.billable_weight}
