from __future__ import annotations

from typing import Any


class BatchError(Exception):
    """Base class for pipeline failures surfaced to the caller."""

    status_code = 400
    code = "batch_error"

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class BatchNotFound(BatchError):
    status_code = 404
    code = "batch_not_found"


class DraftNotFound(BatchError):
    status_code = 404
    code = "draft_not_found"


class TemplateNotFound(BatchError):
    status_code = 404
    code = "template_not_found"


class InvalidServiceOption(BatchError):
    status_code = 422
    code = "invalid_service_option"


class MissingDimensions(BatchError):
    status_code = 422
    code = "missing_dimensions"


class PricingUnavailable(BatchError):
    status_code = 502
    code = "pricing_unavailable"


class DdpUnavailable(BatchError):
    status_code = 422
    code = "ddp_unavailable"


class DdpCalculationFailed(BatchError):
    status_code = 502
    code = "ddp_calculation_failed"


class DdpDeductionFailed(BatchError):
    status_code = 502
    code = "ddp_deduction_failed"


class BalanceUnavailable(BatchError):
    status_code = 502
    code = "balance_unavailable"


class InsufficientBalance(BatchError):
    status_code = 402
    code = "insufficient_balance"


class DuplicateDeduction(BatchError):
    status_code = 409
    code = "duplicate_deduction"


class StaleDdpQuote(BatchError):
    status_code = 409
    code = "stale_ddp_quote"


class ComplianceViolation(BatchError):
    status_code = 422
    code = "compliance_violation"

    def __init__(self, issues: list) -> None:
        self.issues = list(issues)
        super().__init__(
            f"{len(self.issues)} shipment(s) are missing a required tax identifier",
            details=[issue.model_dump(mode="json") for issue in self.issues],
        )


class NothingToSubmit(BatchError):
    status_code = 422
    code = "nothing_to_submit"


class OrderSubmissionFailed(BatchError):
    status_code = 502
    code = "order_submission_failed"
