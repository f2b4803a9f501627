import logging

import pytest

from application.dtos.donations import InitiateDonation
from application.ports.payment_gateway import (
    PaymentProviderError,
    PaymentRecoverableError,
    ProcessorRejectedException,
    UnsupportedCorridorError,
)
from application.services.donation_service import DonationService
from domain.common.exceptions import (
    BusinessException,
    DonationsDisabledException,
    ProcessorUnavailableException,
    RecipientNotConfiguredException,
)
from domain.donation.entity import DonationStatus, PaymentMethod
from infrastructure.repositories.donation_repository import SQLAlchemyDonationRepository
from shared.codes import BusinessCode


def _service(uow_factory, gateways, enabled=True):
    return DonationService(uow_factory, gateways, donations_enabled=enabled)


def _request(recipient_id, **overrides):
    fields = dict(recipient_id=recipient_id, amount=500, message="great story")
    fields.update(overrides)
    return InitiateDonation(**fields)


@pytest.mark.asyncio
async def test_stripe_initiation_returns_client_secret(uow_factory, users, gateways, stripe_gateway, fetch_donations):
    donor_id, recipient_id = users
    result = await _service(uow_factory, gateways).initiate(_request(recipient_id), donor_id)

    assert result.processor_type is PaymentMethod.STRIPE
    assert result.client_artifact == "pi_123_secret_abc"
    assert result.fallback_to_alternate is False

    rows = await fetch_donations()
    assert len(rows) == 1
    row = rows[0]
    assert row.id == result.donation_id
    assert row.status == "pending"
    assert row.amount == 500
    assert row.stripe_payment_intent_id == "pi_123"
    assert row.paypal_order_id is None

    [call] = stripe_gateway.calls
    assert call.payout_destination == "acct_123"
    assert call.metadata == {"donation_id": row.id, "donor_id": donor_id, "recipient_id": recipient_id}
    assert call.idempotency_key == f"donation-{row.id}"


@pytest.mark.asyncio
async def test_paypal_initiation_returns_redirect(uow_factory, users, gateways, paypal_gateway, fetch_donations):
    donor_id, recipient_id = users
    result = await _service(uow_factory, gateways).initiate(
        _request(recipient_id, preferred_processor="paypal"), donor_id
    )

    assert result.processor_type is PaymentMethod.PAYPAL
    assert result.client_artifact.startswith("https://")
    assert paypal_gateway.calls[0].payout_destination == "bob@example.com"
    [row] = await fetch_donations()
    assert row.paypal_order_id == "ORDER-1"
    assert row.payment_method == "PAYPAL"


@pytest.mark.asyncio
async def test_disabled_feature_flag_rejects_without_writes(uow_factory, users, gateways, stripe_gateway, fetch_donations):
    donor_id, recipient_id = users
    with pytest.raises(DonationsDisabledException) as exc:
        await _service(uow_factory, gateways, enabled=False).initiate(_request(recipient_id), donor_id)
    assert exc.value.message == "Donations are disabled"
    assert stripe_gateway.calls == []
    assert await fetch_donations() == []


@pytest.mark.asyncio
async def test_recipient_without_donations_is_rejected(uow_factory, users, make_user, gateways, fetch_donations):
    donor_id, _ = users
    await make_user("quiet", username="quiet", donation_method="STRIPE", stripe_account_id="acct_q", donations_enabled=False)

    with pytest.raises(RecipientNotConfiguredException):
        await _service(uow_factory, gateways).initiate(_request("quiet"), donor_id)
    with pytest.raises(RecipientNotConfiguredException):
        await _service(uow_factory, gateways).initiate(_request("ghost"), donor_id)
    assert await fetch_donations() == []


@pytest.mark.asyncio
async def test_missing_adapter_is_unavailable(uow_factory, users, paypal_gateway, fetch_donations):
    donor_id, recipient_id = users
    with pytest.raises(ProcessorUnavailableException):
        await _service(uow_factory, {PaymentMethod.PAYPAL: paypal_gateway}).initiate(_request(recipient_id), donor_id)
    assert await fetch_donations() == []


@pytest.mark.asyncio
async def test_unsupported_corridor_suggests_alternate(uow_factory, users, gateways, stripe_gateway, paypal_gateway, fetch_donations):
    donor_id, recipient_id = users
    stripe_gateway.error = UnsupportedCorridorError(
        "Funds can't be sent to accounts located in XX",
        provider="stripe",
        provider_code="transfers_not_allowed",
    )

    result = await _service(uow_factory, gateways).initiate(_request(recipient_id), donor_id)

    assert result.fallback_to_alternate is True
    assert result.alternate_processor is PaymentMethod.PAYPAL
    assert result.alternate_destination == "bob@example.com"
    assert result.client_artifact is None
    assert len(stripe_gateway.calls) == 1
    assert paypal_gateway.calls == []

    [row] = await fetch_donations()
    assert row.id == result.donation_id
    assert row.status == "failed"


@pytest.mark.asyncio
async def test_unsupported_corridor_without_alternate_is_rejected(uow_factory, users, make_user, gateways, stripe_gateway, fetch_donations):
    donor_id, _ = users
    await make_user("stripe-only", donation_method="STRIPE", stripe_account_id="acct_s", donations_enabled=True)
    stripe_gateway.error = UnsupportedCorridorError("nope", provider="stripe", provider_code="country_unsupported")

    with pytest.raises(ProcessorRejectedException) as exc:
        await _service(uow_factory, gateways).initiate(_request("stripe-only"), donor_id)

    [row] = await fetch_donations()
    assert row.status == "failed"
    assert exc.value.details["donation_id"] == row.id


@pytest.mark.asyncio
async def test_timeout_keeps_donation_pending(uow_factory, users, gateways, stripe_gateway, fetch_donations):
    donor_id, recipient_id = users
    stripe_gateway.error = PaymentRecoverableError("stripe request timed out", provider="stripe")

    with pytest.raises(PaymentRecoverableError):
        await _service(uow_factory, gateways).initiate(_request(recipient_id), donor_id)

    [row] = await fetch_donations()
    assert row.status == DonationStatus.PENDING.value
    assert row.stripe_payment_intent_id is None


@pytest.mark.asyncio
async def test_processor_failure_marks_donation_failed(uow_factory, users, gateways, stripe_gateway, fetch_donations):
    donor_id, recipient_id = users
    stripe_gateway.error = PaymentProviderError("card_declined", provider="stripe", provider_code="card_declined")

    with pytest.raises(ProcessorRejectedException) as exc:
        await _service(uow_factory, gateways).initiate(_request(recipient_id), donor_id)

    assert exc.value.details["provider_code"] == "card_declined"
    [row] = await fetch_donations()
    assert row.status == "failed"


@pytest.mark.asyncio
async def test_attach_failure_is_logged_and_unavailable(
    caplog, monkeypatch, uow_factory, users, gateways, stripe_gateway, fetch_donations
):
    donor_id, recipient_id = users

    async def broken_attach(self, donation_id, external_id):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(SQLAlchemyDonationRepository, "attach_external_id", broken_attach)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(BusinessException) as exc:
            await _service(uow_factory, gateways).initiate(_request(recipient_id), donor_id)

    assert exc.value.code == BusinessCode.SERVICE_UNAVAILABLE
    assert len(stripe_gateway.calls) == 1
    [row] = await fetch_donations()
    assert exc.value.details["donation_id"] == row.id
    assert row.status == "pending"
    assert row.stripe_payment_intent_id is None
    failures = [r.getMessage() for r in caplog.records if "donation_external_id_attach_failed" in r.getMessage()]
    assert failures and "pi_123" in failures[0]
