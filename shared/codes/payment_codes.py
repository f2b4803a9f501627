"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    PROCESSOR_REJECTED = 60010
    UNSUPPORTED_CORRIDOR = 60011


# Provider status -> donation ledger status. Anything not listed stays pending.
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "pending",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "pending",
        "requires_capture": "pending",
        "succeeded": "collected",
        "canceled": "failed",
    },
    "paypal": {
        # Per order status (Orders v2)
        "CREATED": "pending",
        "SAVED": "pending",
        "APPROVED": "pending",
        "PAYER_ACTION_REQUIRED": "pending",
        "COMPLETED": "succeeded",
        "VOIDED": "failed",
        # Per capture status
        "PENDING": "pending",
        "DECLINED": "failed",
        "FAILED": "failed",
    },
}

# Stripe error codes meaning the destination account cannot receive this charge
# (cross-border transfer restrictions, unsupported payout country).
STRIPE_UNSUPPORTED_CORRIDOR_CODES = frozenset({
    "transfers_not_allowed",
    "account_country_invalid_address",
    "country_unsupported",
    "platform_account_required",
    "insufficient_capabilities_for_transfer",
})

# PayPal issue names with the same meaning on the Orders API.
PAYPAL_UNSUPPORTED_CORRIDOR_ISSUES = frozenset({
    "PAYEE_ACCOUNT_RESTRICTED",
    "PAYEE_ACCOUNT_LOCKED_OR_CLOSED",
    "PAYEE_ACCOUNT_INVALID",
    "PAYEE_NOT_ENABLED_FOR_CARD_PROCESSING",
    "CURRENCY_NOT_SUPPORTED_FOR_COUNTRY",
})

# Capture retried for an order PayPal has already captured.
PAYPAL_ORDER_ALREADY_CAPTURED = "ORDER_ALREADY_CAPTURED"
