"""
Payment Initiator.

Validates a payment request, charges the outstanding balance through the
gateway and records the resulting PaymentTransaction.

Preconditions are checked in a fixed order and the first failure aborts
the request before any gateway call or write:
1. authenticated (bearer dependency)
2. provider valid
3. mobile number valid
4. invoice exists
5. caller may pay this invoice
6. something is outstanding
7. gateway configured

A transaction row is written only after the gateway accepted the charge,
so a failed charge never leaves a phantom pending payment behind.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ResourceNotFoundError, InvoiceAlreadyPaidError, GatewayNotConfiguredError, GatewayError
)
from backend.app.core.guards import ownership_guard
from backend.app.domain.payments import ledger
from backend.app.domain.payments.gateway import (
    PaystackClient, ChargeRequest, CheckoutRequest, GatewayResult
)
from backend.app.domain.payments.normalizer import (
    parse_provider, normalize_mobile_number, GATEWAY_PROVIDER_CODES, PROVIDER_PAYMENT_METHODS
)
from backend.app.models.invoice import Invoice
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.payment_enums import TransactionStatus, PaymentChannel, PaymentMethod

logger = logging.getLogger(__name__)

PENDING_OTP = "pending_otp"
PENDING_USSD = "pending_ussd"


@dataclass(frozen=True)
class InitiationResult:
    """
    Caller-facing outcome of a mobile money initiation.

    status is pending_otp, pending_ussd, or the internal transaction status
    value for anything else (data then carries the gateway's payload).
    """
    status: str
    reference: str
    message: str
    display_text: Optional[str] = None
    ussd_code: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutResult:
    reference: str
    authorization_url: str


def generate_reference(prefix: str, invoice_number: str) -> str:
    """<prefix>-<invoiceNumber>-<epoch millis>-<random hex>. Uniqueness is enforced by the database."""
    return f"{prefix}-{invoice_number}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def build_callback_url(invoice_number: str) -> str:
    return f"{settings.app_url.rstrip('/')}/dashboard/customer/invoices?ref={quote(invoice_number, safe='')}"


class PaymentInitiator:

    def __init__(self, gateway: PaystackClient):
        self.gateway = gateway

    async def initiate(
        self,
        db: AsyncSession,
        invoice_id: int,
        provider: str,
        mobile_number: str,
        current_user: dict,
    ) -> InitiationResult:
        """
        Start a mobile money payment for the outstanding balance of an invoice.

        Returns:
            InitiationResult describing what the payer must do next

        Raises:
            PaymentValidationError, ResourceNotFoundError, InsufficientPermissionsError,
            InvoiceAlreadyPaidError, GatewayNotConfiguredError, GatewayError
        """
        mm_provider = parse_provider(provider)
        phone = normalize_mobile_number(mobile_number)

        invoice = await self._payable_invoice(db, invoice_id, current_user)
        amount = ledger.outstanding(invoice)
        payment_method = PROVIDER_PAYMENT_METHODS[mm_provider]
        reference = generate_reference("MM", invoice.invoice_number)

        charge = ChargeRequest(
            reference=reference,
            email=invoice.customer.email,
            amount=amount,
            currency=settings.payment_currency,
            mobile_number=phone,
            provider_code=GATEWAY_PROVIDER_CODES[mm_provider],
            callback_url=build_callback_url(invoice.invoice_number),
            metadata={
                "invoiceId": invoice.id,
                "customerId": invoice.customer_id,
                "invoiceNumber": invoice.invoice_number,
                "paymentMethod": payment_method.value,
            },
        )

        result = await self.gateway.charge(charge)
        if result.status == TransactionStatus.FAILED:
            logger.warning("Gateway declined charge %s for invoice %s: %s",
                           reference, invoice.invoice_number, result.message)
            raise GatewayError(result.message or "Mobile money charge failed",
                               details={"gateway_status": result.gateway_status})

        stored_status = self._initial_status(result)
        await self._record_transaction(
            db,
            invoice=invoice,
            reference=reference,
            amount=amount,
            channel=PaymentChannel.MOBILE_MONEY,
            payment_method=payment_method,
            result=result,
            status=stored_status,
            mobile_money_number=phone,
            provider=mm_provider,
        )

        logger.info("Initiated mobile money payment %s for invoice %s (%s %s, gateway status %s)",
                    reference, invoice.invoice_number, amount, settings.payment_currency,
                    result.gateway_status)

        if stored_status == TransactionStatus.AWAITING_OTP:
            return InitiationResult(
                status=PENDING_OTP,
                reference=reference,
                message="Please approve the payment on your phone",
                display_text=result.display_text,
            )
        if stored_status == TransactionStatus.AWAITING_USSD:
            return InitiationResult(
                status=PENDING_USSD,
                reference=reference,
                message="Please dial the USSD code on your phone",
                ussd_code=result.ussd_code,
                display_text=result.display_text,
            )
        return InitiationResult(
            status=stored_status.value,
            reference=reference,
            message="Mobile money payment initiated",
            data=result.data,
        )

    async def initiate_checkout(
        self,
        db: AsyncSession,
        invoice_id: int,
        current_user: dict,
    ) -> CheckoutResult:
        """
        Start a hosted card checkout for the outstanding balance of an invoice.

        The resulting transaction is settled by the reconciler like any other.
        """
        invoice = await self._payable_invoice(db, invoice_id, current_user)
        amount = ledger.outstanding(invoice)
        reference = generate_reference("INV", invoice.invoice_number)

        checkout = CheckoutRequest(
            reference=reference,
            email=invoice.customer.email,
            amount=amount,
            currency=settings.payment_currency,
            callback_url=build_callback_url(invoice.invoice_number),
            metadata={
                "invoiceId": invoice.id,
                "customerId": invoice.customer_id,
                "invoiceNumber": invoice.invoice_number,
                "paymentMethod": PaymentMethod.CARD.value,
            },
        )

        result = await self.gateway.initialize_checkout(checkout)
        if not result.authorization_url:
            raise GatewayError("Failed to initialize payment")

        await self._record_transaction(
            db,
            invoice=invoice,
            reference=reference,
            amount=amount,
            channel=PaymentChannel.CARD,
            payment_method=PaymentMethod.CARD,
            result=result,
            status=TransactionStatus.PENDING,
        )

        logger.info("Initialized card checkout %s for invoice %s", reference, invoice.invoice_number)
        return CheckoutResult(reference=reference, authorization_url=result.authorization_url)

    async def _payable_invoice(self, db: AsyncSession, invoice_id: int, current_user: dict) -> Invoice:
        """Preconditions 4-7: exists, caller may pay it, balance due, gateway configured."""
        result = await db.execute(select(Invoice).where(Invoice.id == invoice_id))
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise ResourceNotFoundError("Invoice", invoice_id)

        ownership_guard.enforce(invoice.customer.user_id, current_user, "invoice")

        if ledger.outstanding(invoice) <= 0:
            raise InvoiceAlreadyPaidError(invoice.id)

        if not self.gateway.is_configured:
            raise GatewayNotConfiguredError()

        return invoice

    @staticmethod
    def _initial_status(result: GatewayResult) -> TransactionStatus:
        # Credit is applied only by the reconciler; an immediate success waits for verification
        if result.status == TransactionStatus.SUCCESS:
            return TransactionStatus.PENDING
        return result.status

    async def _record_transaction(
        self,
        db: AsyncSession,
        invoice: Invoice,
        reference: str,
        amount,
        channel: PaymentChannel,
        payment_method: PaymentMethod,
        result: GatewayResult,
        status: TransactionStatus,
        mobile_money_number: Optional[str] = None,
        provider=None,
    ) -> PaymentTransaction:
        transaction = PaymentTransaction(
            reference=reference,
            amount=amount,
            currency=settings.payment_currency,
            channel=channel,
            payment_method=payment_method,
            mobile_money_number=mobile_money_number,
            provider=provider,
            status=status,
            gateway_status=result.gateway_status,
            gateway_response=result.envelope,
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
        )
        db.add(transaction)

        # Informational only; balances are never derived from it
        invoice.transaction_ref = reference

        await db.commit()
        return transaction
