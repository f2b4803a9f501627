"""
Donation API routes. Thin: validation in DTOs, logic in application services.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_current_user_id,
    get_donation_service,
    get_paypal_reconciler,
    get_stripe_reconciler,
)
from application.dtos.donations import (
    ConfirmCharge,
    ConfirmRedirectOrder,
    ConfirmationResult,
    InitiateDonation,
    InitiationResult,
)
from application.services.donation_service import DonationService
from application.services.reconciliation_service import (
    PayPalOrderReconciler,
    StripeChargeReconciler,
)
from core.response import Response, success_response


router = APIRouter(prefix="/donations", tags=["Donations"])


@router.post("/initiate", response_model=Response[InitiationResult], response_model_by_alias=True)
async def initiate_donation(
    payload: InitiateDonation,
    user_id: str = Depends(get_current_user_id),
    service: DonationService = Depends(get_donation_service),
):
    """Create a pending donation and the processor checkout for it."""
    result = await service.initiate(payload, donor_id=user_id)
    message = "Alternate processor available" if result.fallback_to_alternate else "Donation initiated"
    return success_response(data=result, message=message)


@router.post("/confirm-charge", response_model=Response[ConfirmationResult], response_model_by_alias=True)
async def confirm_charge(
    payload: ConfirmCharge,
    user_id: str = Depends(get_current_user_id),
    reconciler: StripeChargeReconciler = Depends(get_stripe_reconciler),
):
    """Record a Stripe charge the client has confirmed."""
    result = await reconciler.confirm(payload, user_id)
    return success_response(data=result, message="Payment recorded successfully")


@router.post(
    "/confirm-redirect-order",
    response_model=Response[ConfirmationResult],
    response_model_by_alias=True,
)
async def confirm_redirect_order(
    payload: ConfirmRedirectOrder,
    user_id: str = Depends(get_current_user_id),
    reconciler: PayPalOrderReconciler = Depends(get_paypal_reconciler),
):
    """Record a PayPal order the donor approved."""
    result = await reconciler.confirm(payload, user_id)
    return success_response(data=result, message="Payment recorded successfully")
