"""
Processor webhook routes. No bearer auth: every event is signature-verified.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_webhook_service
from application.dtos.donations import WebhookAck
from application.services.webhook_service import PaymentWebhookService
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from core.response import Response, success_response
from core.settings import payment_settings


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif remote_ip == entry:
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post("/webhooks/{provider}", response_model=Response[WebhookAck], response_model_by_alias=True)
async def payments_webhook(
    provider: str,
    request: Request,
    service: PaymentWebhookService = Depends(get_webhook_service),
):
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = request.client.host if request.client else ""
        if not _ip_permitted(remote_ip, allowlist):
            logger.warning("webhook_ip_rejected", provider=provider, remote_ip=remote_ip)
            raise UnauthorizedException("Webhook source not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await service.handle(provider, headers, raw_body)
    return success_response(data=ack, message="Webhook processed" if ack.handled else "Webhook ignored")
