"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol and on the error classes below;
infrastructure implements adapters and raises these errors.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.donations import CaptureResult, CheckoutResult, CreateCheckout, WebhookEvent
from domain.common.exceptions import BusinessException
from domain.donation.entity import PaymentMethod
from shared.codes.payment_codes import PaymentCode


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment processors.

    Implementations must bound every outbound call with a timeout.
    """

    processor: PaymentMethod

    async def create_checkout(self, req: CreateCheckout) -> CheckoutResult: ...

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class CapturingGateway(PaymentGateway, Protocol):
    """Redirect processors whose approved orders must be captured server-side."""

    async def capture_checkout(self, identifier: str, *, idempotency_key: Optional[str] = None) -> CaptureResult: ...


class PaymentProviderError(BusinessException):
    """Processor refused or failed the request; the attempt is dead."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )


class UnsupportedCorridorError(PaymentProviderError):
    """Processor structurally cannot pay out to this recipient (country/corridor)."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.UNSUPPORTED_CORRIDOR,
            error_type="UnsupportedCorridor",
        )


class PaymentRecoverableError(BusinessException):
    """Timeout or transport failure: the outcome at the processor is unknown."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )


class ProcessorRejectedException(BusinessException):
    """Surfaced to the caller when initiation failed at the processor."""

    def __init__(self, message: str, *, processor: PaymentMethod, donation_id: str, provider_code: str | None = None):
        super().__init__(
            code=PaymentCode.PROCESSOR_REJECTED,
            message=message,
            error_type="ProcessorRejected",
            details={
                "processor": processor.value,
                "donation_id": donation_id,
                "provider_code": provider_code,
            },
        )
