import pytest

from domain.common.exceptions import DomainValidationException
from domain.donation.entity import Donation, DonationStatus, PaymentMethod
from domain.notification.entity import Notification


def _pending(donor_id, recipient_id, method=PaymentMethod.STRIPE):
    return Donation.start(donor_id=donor_id, recipient_id=recipient_id, amount=500, payment_method=method)


@pytest.mark.asyncio
async def test_create_and_lookup_by_external_id(uow_factory, users):
    donor_id, recipient_id = users
    async with uow_factory() as uow:
        created = await uow.donation_repository.create(_pending(donor_id, recipient_id))
        await uow.donation_repository.attach_external_id(created.id, "pi_1")

    async with uow_factory(readonly=True) as uow:
        by_id = await uow.donation_repository.get_by_id(created.id)
        by_intent = await uow.donation_repository.get_by_stripe_payment_intent_id("pi_1")
        by_order = await uow.donation_repository.get_by_paypal_order_id("pi_1")

    assert by_id.status is DonationStatus.PENDING
    assert by_intent.id == created.id
    assert by_order is None


@pytest.mark.asyncio
async def test_attach_external_id_is_set_once(uow_factory, users):
    donor_id, recipient_id = users
    async with uow_factory() as uow:
        created = await uow.donation_repository.create(_pending(donor_id, recipient_id, PaymentMethod.PAYPAL))
        await uow.donation_repository.attach_external_id(created.id, "ORDER-1")

    async with uow_factory() as uow:
        again = await uow.donation_repository.attach_external_id(created.id, "ORDER-1")
        assert again.paypal_order_id == "ORDER-1"

    with pytest.raises(DomainValidationException):
        async with uow_factory() as uow:
            await uow.donation_repository.attach_external_id(created.id, "ORDER-2")

    async with uow_factory(readonly=True) as uow:
        stored = await uow.donation_repository.get_by_id(created.id)
    assert stored.paypal_order_id == "ORDER-1"


@pytest.mark.asyncio
async def test_transition_from_pending_happens_once(uow_factory, users):
    donor_id, recipient_id = users
    async with uow_factory() as uow:
        created = await uow.donation_repository.create(_pending(donor_id, recipient_id))

    async with uow_factory() as uow:
        first = await uow.donation_repository.transition_from_pending(created.id, DonationStatus.COLLECTED)
    async with uow_factory() as uow:
        second = await uow.donation_repository.transition_from_pending(created.id, DonationStatus.FAILED)
        current = await uow.donation_repository.get_by_id(created.id)

    assert first is not None and first.status is DonationStatus.COLLECTED
    assert first.updated_at >= created.updated_at
    assert second is None
    assert current.status is DonationStatus.COLLECTED
    assert current.updated_at == first.updated_at


@pytest.mark.asyncio
async def test_transition_to_pending_is_rejected(uow_factory, users):
    donor_id, recipient_id = users
    async with uow_factory() as uow:
        created = await uow.donation_repository.create(_pending(donor_id, recipient_id))
    with pytest.raises(ValueError):
        async with uow_factory() as uow:
            await uow.donation_repository.transition_from_pending(created.id, DonationStatus.PENDING)


@pytest.mark.asyncio
async def test_create_terminal_is_guarded_by_unique_intent_id(uow_factory, users, fetch_donations):
    donor_id, recipient_id = users

    def _collected():
        return Donation.confirmed(
            donor_id=donor_id,
            recipient_id=recipient_id,
            amount=700,
            payment_method=PaymentMethod.STRIPE,
            external_id="pi_dup",
        )

    async with uow_factory() as uow:
        first = await uow.donation_repository.create_terminal(_collected())
    async with uow_factory() as uow:
        second = await uow.donation_repository.create_terminal(_collected())
        # the surrounding transaction is still usable after the conflict
        winner = await uow.donation_repository.get_by_stripe_payment_intent_id("pi_dup")

    assert first is not None and first.status is DonationStatus.COLLECTED
    assert second is None
    assert winner.id == first.id
    assert len(await fetch_donations()) == 1


@pytest.mark.asyncio
async def test_notification_uniqueness_per_donation(uow_factory, users, fetch_notifications):
    donor_id, recipient_id = users
    async with uow_factory() as uow:
        donation = await uow.donation_repository.create_terminal(
            Donation.confirmed(
                donor_id=donor_id,
                recipient_id=recipient_id,
                amount=500,
                payment_method=PaymentMethod.STRIPE,
                external_id="pi_n",
            )
        )

    def _notification():
        return Notification.for_donation(
            recipient_id=recipient_id,
            actor_id=donor_id,
            actor_name="alice",
            donation_id=donation.id,
            amount=500,
        )

    async with uow_factory() as uow:
        created = await uow.notification_repository.create(_notification())
    async with uow_factory() as uow:
        duplicate = await uow.notification_repository.create(_notification())
        existing = await uow.notification_repository.get_donation_notification(recipient_id, donation.id)

    assert created is not None
    assert duplicate is None
    assert existing.id == created.id
    assert len(await fetch_notifications()) == 1


@pytest.mark.asyncio
async def test_donation_settings_lookup(uow_factory, users, make_user):
    donor_id, recipient_id = users
    await make_user("legacy", username=None, name="Legacy", donation_method="paypal", paypal_link="l@example.com")

    async with uow_factory(readonly=True) as uow:
        recipient = await uow.user_repository.get_donation_settings(recipient_id)
        legacy = await uow.user_repository.get_donation_settings("legacy")
        missing = await uow.user_repository.get_donation_settings("nobody")
        name = await uow.user_repository.get_display_name("legacy")

    assert recipient.donation_method is PaymentMethod.STRIPE
    assert recipient.payout_destination(PaymentMethod.STRIPE) == "acct_123"
    assert legacy.donation_method is PaymentMethod.PAYPAL
    assert legacy.donations_enabled is False
    assert missing is None
    assert name == "Legacy"
