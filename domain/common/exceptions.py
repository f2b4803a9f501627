"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain layer must not
depend on core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for business errors."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class RecipientNotConfiguredException(BusinessException):
    """Recipient is missing, has donations disabled, or lacks a usable processor."""

    def __init__(self, recipient_id: str, reason: str = "Recipient not found or donations not enabled"):
        super().__init__(
            code=BusinessCode.RECIPIENT_NOT_CONFIGURED,
            message=reason,
            error_type="RecipientNotConfigured",
            details={"recipient_id": recipient_id},
        )


class DonationNotFoundException(BusinessException):
    def __init__(self, identifier: str, *, message: str = "No matching pending donation found"):
        super().__init__(
            code=BusinessCode.DONATION_NOT_FOUND,
            message=message,
            error_type="NotFound",
            details={"identifier": identifier},
        )


class DonationStateConflictException(BusinessException):
    """Raised by the entity when a transition violates the state machine."""

    def __init__(self, donation_id: Optional[str], current: str, target: str):
        super().__init__(
            code=BusinessCode.DONATION_STATE_CONFLICT,
            message=f"Cannot transition donation from {current} to {target}",
            error_type="DonationStateConflict",
            details={"donation_id": donation_id, "current": current, "target": target},
            field="status",
        )


class DonationsDisabledException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.DONATIONS_DISABLED,
            message="Donations are disabled",
            error_type="Forbidden",
        )


class ReconciliationDeferredException(BusinessException):
    """Funds may have moved but the ledger could not be updated; the caller should retry."""

    def __init__(self, external_id: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Payment received but could not be recorded yet; please retry later",
            error_type="ReconciliationDeferred",
            details={"external_id": external_id},
        )


class ProcessorUnavailableException(BusinessException):
    """No adapter is configured for the processor the recipient uses."""

    def __init__(self, processor: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=f"{processor.title()} payments are temporarily unavailable",
            error_type="ProcessorUnavailable",
            details={"processor": processor},
        )
