"""
Base payment client implementing shared concerns: http, timeouts, retry, logging, mapping.

Concrete processors subclass and implement processor-specific logic.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.donations import CheckoutResult, CreateCheckout, WebhookEvent
from application.ports.payment_gateway import PaymentRecoverableError
from domain.donation.entity import PaymentMethod
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

T = TypeVar("T")


class BasePaymentClient:
    provider: str = "base"
    processor: PaymentMethod

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        base_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._base_url = base_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            pool=self._timeouts_cfg["total"],
        )

    @property
    def total_timeout(self) -> float:
        return float(self._timeouts_cfg["total"])

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeouts,
                transport=self._transport,
            )
        # Kept open for reuse; aclose() releases it
        yield self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise AssertionError("unreachable")  # pragma: no cover

    async def _bounded(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` (with retries) under the total deadline.

        Timeouts and transport failures leave the outcome at the processor
        unknown, so they surface as PaymentRecoverableError.
        """
        try:
            return await asyncio.wait_for(self._retry(fn), timeout=self.total_timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("payment_provider_timeout", provider=self.provider, operation=operation)
            raise PaymentRecoverableError(
                f"{self.provider} request timed out",
                provider=self.provider,
                details={"operation": operation},
            ) from exc
        except httpx.TransportError as exc:
            logger.warning(
                "payment_provider_unreachable",
                provider=self.provider,
                operation=operation,
                error=str(exc),
            )
            raise PaymentRecoverableError(
                f"{self.provider} is unreachable",
                provider=self.provider,
                details={"operation": operation},
            ) from exc

    async def create_checkout(self, req: CreateCheckout) -> CheckoutResult:
        raise NotImplementedError

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        raise NotImplementedError

    # Helpers
    @staticmethod
    def _header(headers: dict[str, Any], name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in headers.items():
            if key.lower() == lowered:
                return value
        return None

    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, "pending")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
