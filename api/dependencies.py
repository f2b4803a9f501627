"""
API dependencies: authentication and service wiring.
"""
from typing import Callable, Mapping, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from api.middleware import user_id_var
from application.ports.payment_gateway import PaymentGateway
from application.services.donation_service import DonationService
from application.services.notification_service import DonationNotificationDispatcher
from application.services.reconciliation_service import (
    PayPalOrderReconciler,
    StripeChargeReconciler,
)
from application.services.webhook_service import PaymentWebhookService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.donation.entity import PaymentMethod
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

import structlog


logger = get_logger(__name__)

http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT bearer token issued by the auth service",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("You must be logged in to make a donation")


async def get_current_user_id(token: str = Depends(get_token)) -> str:
    """Authenticated user id (the ``sub`` claim of an access token)."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.PyJWTError as e:
        logger.warning("invalid_access_token", error=str(e))
        raise UnauthorizedException("Invalid authentication credentials")

    if payload.get("type", "access") != "access":
        raise UnauthorizedException("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Invalid authentication credentials")

    user_id = str(user_id)
    user_id_var.set(user_id)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_payment_gateways(request: Request) -> Mapping[PaymentMethod, PaymentGateway]:
    """Adapters are created once in the app lifespan and shared across requests."""
    return getattr(request.app.state, "payment_gateways", {})


def get_notification_dispatcher(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> DonationNotificationDispatcher:
    return DonationNotificationDispatcher(uow_factory)


def get_donation_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateways: Mapping[PaymentMethod, PaymentGateway] = Depends(get_payment_gateways),
) -> DonationService:
    return DonationService(
        uow_factory,
        gateways,
        donations_enabled=settings.ENABLE_DONATION,
        currency=payment_settings.currency,
    )


def get_stripe_reconciler(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    dispatcher: DonationNotificationDispatcher = Depends(get_notification_dispatcher),
) -> StripeChargeReconciler:
    return StripeChargeReconciler(uow_factory, dispatcher, donations_enabled=settings.ENABLE_DONATION)


def get_paypal_reconciler(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateways: Mapping[PaymentMethod, PaymentGateway] = Depends(get_payment_gateways),
    dispatcher: DonationNotificationDispatcher = Depends(get_notification_dispatcher),
) -> PayPalOrderReconciler:
    return PayPalOrderReconciler(uow_factory, dispatcher, gateways.get(PaymentMethod.PAYPAL))


def get_webhook_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateways: Mapping[PaymentMethod, PaymentGateway] = Depends(get_payment_gateways),
    dispatcher: DonationNotificationDispatcher = Depends(get_notification_dispatcher),
) -> PaymentWebhookService:
    return PaymentWebhookService(uow_factory, gateways, dispatcher)
