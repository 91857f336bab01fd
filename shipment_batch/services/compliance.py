from __future__ import annotations

from collections.abc import Iterable

from shipment_batch.core.errors import ComplianceViolation
from shipment_batch.core.logging import get_logger
from shipment_batch.models.enums import TaxIdType
from shipment_batch.schemas.draft import ShipmentDraft, ValidationIssue
from shipment_batch.services.countries import country_name_to_code, is_eu_country, is_hmrc_country

logger = get_logger("compliance")

PLACEHOLDER_VALUES = {"null", "undefined"}

MESSAGES = {
    TaxIdType.IOSS: "IOSS number is required for shipments to EU countries",
    TaxIdType.HMRC: "HMRC number is required for shipments to the United Kingdom and Sweden",
}


def required_tax_id(country_code: str | None) -> TaxIdType | None:
    if is_hmrc_country(country_code):
        return TaxIdType.HMRC
    if is_eu_country(country_code):
        return TaxIdType.IOSS
    return None


def is_missing(tax_id: str | None) -> bool:
    if tax_id is None:
        return True
    value = tax_id.strip()
    return not value or value.lower() in PLACEHOLDER_VALUES


class TaxIdValidator:
    """All-or-nothing tax identifier gate for a batch submission."""

    def check(self, draft: ShipmentDraft) -> ValidationIssue | None:
        code = country_name_to_code(draft.receiver_country)
        required = required_tax_id(code)
        if required is None or not is_missing(draft.tax_id):
            return None
        return ValidationIssue(
            row_index=draft.row_index,
            draft_id=draft.id,
            receiver_name=draft.receiver_name,
            country_code=code or "",
            required_type=required,
            message=MESSAGES[required],
        )

    def validate(self, drafts: Iterable[ShipmentDraft]) -> list[ValidationIssue]:
        issues = []
        for draft in drafts:
            if draft.skip_import:
                continue
            issue = self.check(draft)
            if issue is not None:
                issues.append(issue)
        return issues

    def ensure_compliant(self, drafts: Iterable[ShipmentDraft]) -> None:
        issues = self.validate(drafts)
        if issues:
            logger.warning(
                "batch_blocked_by_tax_id",
                violations=len(issues),
                rows=[issue.row_index for issue in issues],
            )
            raise ComplianceViolation(issues)
