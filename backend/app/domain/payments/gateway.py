"""
Payment Gateway Client (Paystack adapter).

The only module that speaks the gateway's vocabulary. Gateway status
literals (send_otp, pay_offline, success, ...) are translated here into
TransactionStatus; callers never branch on raw gateway strings.

Operations:
- charge: mobile money charge. Not idempotent on the gateway side, never retried.
- verify: status lookup by reference. Idempotent, retried on transport errors.
- initialize_checkout: hosted card checkout. Not retried.

Every raw payload is wrapped in a versioned envelope before it is stored.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed, retry_if_exception_type, before_sleep_log

from backend.app.core.config import settings
from backend.app.core.exceptions import GatewayError, GatewayNotConfiguredError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.domain.payments.normalizer import to_minor_units
from backend.app.models.payment_enums import TransactionStatus

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = 1

STATUS_MAP = {
    "send_otp": TransactionStatus.AWAITING_OTP,
    "pay_offline": TransactionStatus.AWAITING_USSD,
    "success": TransactionStatus.SUCCESS,
    "failed": TransactionStatus.FAILED,
    "abandoned": TransactionStatus.FAILED,
    "reversed": TransactionStatus.FAILED,
}

# Shared across requests; only network failures count towards opening it
gateway_circuit_breaker = CircuitBreaker(
    failure_threshold=5, reset_timeout=30, trip_on=(httpx.TransportError,)
)


def translate_status(literal: Optional[str]) -> TransactionStatus:
    """Map a gateway status literal to the internal status. Unknown literals are PENDING."""
    return STATUS_MAP.get((literal or "").strip().lower(), TransactionStatus.PENDING)


def build_envelope(raw_payload: Any, provider: str = "paystack") -> Dict[str, Any]:
    return {
        "version": ENVELOPE_VERSION,
        "provider": provider,
        "raw_payload": raw_payload,
        "received_at": datetime.now(timezone.utc).isoformat(),
    }


@dataclass(frozen=True)
class ChargeRequest:
    """A mobile money charge. `amount` is in major units; converted on the wire."""
    reference: str
    email: str
    amount: Decimal
    currency: str
    mobile_number: str
    provider_code: str
    callback_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "amount": to_minor_units(self.amount),
            "currency": self.currency,
            "reference": self.reference,
            "mobile_money": {
                "phone": self.mobile_number,
                "provider": self.provider_code,
            },
            "metadata": self.metadata,
            "callback_url": self.callback_url,
        }


@dataclass(frozen=True)
class CheckoutRequest:
    """A hosted card checkout."""
    reference: str
    email: str
    amount: Decimal
    currency: str
    callback_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "amount": to_minor_units(self.amount),
            "currency": self.currency,
            "reference": self.reference,
            "metadata": self.metadata,
            "callback_url": self.callback_url,
            "channels": ["card"],
        }


@dataclass(frozen=True)
class GatewayResult:
    """A successful gateway response, already translated."""
    status: TransactionStatus
    gateway_status: str
    message: Optional[str]
    data: Dict[str, Any]
    envelope: Dict[str, Any]

    @property
    def display_text(self) -> Optional[str]:
        return self.data.get("display_text")

    @property
    def ussd_code(self) -> Optional[str]:
        return self.data.get("ussd_code")

    @property
    def authorization_url(self) -> Optional[str]:
        return self.data.get("authorization_url")


class PaystackClient:
    """
    Async Paystack client.

    A new httpx.AsyncClient is opened per operation; `transport` lets tests
    plug in httpx.MockTransport.
    """

    provider_name = "paystack"

    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = "https://api.paystack.co",
        timeout: float = 20.0,
        verify_attempts: int = 3,
        retry_backoff: float = 0.5,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_attempts = max(1, verify_attempts)
        self.retry_backoff = retry_backoff
        self.circuit_breaker = circuit_breaker or gateway_circuit_breaker
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def charge(self, request: ChargeRequest) -> GatewayResult:
        response = await self._send("POST", "/charge", json=request.to_payload())
        return self._parse(response, "charge")

    async def initialize_checkout(self, request: CheckoutRequest) -> GatewayResult:
        response = await self._send("POST", "/transaction/initialize", json=request.to_payload())
        return self._parse(response, "initialize")

    async def verify(self, reference: str) -> GatewayResult:
        path = f"/transaction/verify/{quote(reference, safe='')}"
        # Only unreachable-gateway errors are retried; a parsed error response is final
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.verify_attempts),
            wait=wait_fixed(self.retry_backoff),
            retry=retry_if_exception_type(GatewayError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await self._send("GET", path)
        return self._parse(response, "verify")

    async def _send(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if not self.is_configured:
            raise GatewayNotConfiguredError()

        try:
            return await self.circuit_breaker.call(self._request, method, path, json)
        except CircuitOpenError:
            logger.error("Gateway circuit open, rejecting %s %s", method, path)
            raise GatewayError("Payment gateway temporarily unavailable")
        except httpx.TransportError as exc:
            logger.error("Gateway transport error on %s %s: %s", method, path, exc)
            raise GatewayError("Payment gateway unreachable", details={"error": type(exc).__name__})

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        ) as client:
            return await client.request(method, path, json=json)

    def _parse(self, response: httpx.Response, operation: str) -> GatewayResult:
        try:
            body = response.json()
        except ValueError:
            logger.error("Gateway %s returned non-JSON response: %s %s",
                         operation, response.status_code, response.text[:500])
            raise GatewayError(f"Invalid gateway response (status={response.status_code})")

        if not isinstance(body, dict):
            body = {}
        data = body.get("data")
        if not response.is_success or not body.get("status") or not isinstance(data, dict):
            logger.error("Gateway %s error status=%s body=%s", operation, response.status_code, str(body)[:500])
            message = body.get("message")
            raise GatewayError(
                message or f"Gateway {operation} failed",
                details={"status_code": response.status_code},
            )

        gateway_status = str(data.get("status") or "pending")
        return GatewayResult(
            status=translate_status(gateway_status),
            gateway_status=gateway_status,
            message=data.get("gateway_response") or body.get("message"),
            data=data,
            envelope=build_envelope(body, self.provider_name),
        )


def get_payment_gateway() -> PaystackClient:
    """FastAPI dependency returning a gateway client built from settings."""
    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.gateway_timeout_seconds,
        verify_attempts=settings.gateway_verify_attempts,
    )
