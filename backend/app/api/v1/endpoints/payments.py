"""
Payment API Endpoints.

Mobile money initiation and status polling, card checkout, and staff
recording of offline receipts.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backend.app.db.session import get_db
from backend.app.models.enums import ELEVATED_ROLES
from backend.app.schemas.payments import (
    MobileMoneyPaymentRequest, MobileMoneyPaymentResponse, PaymentStatusResponse,
    CardCheckoutRequest, CardCheckoutResponse, ManualPaymentRequest, InvoiceBalanceResponse
)
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import PaymentValidationError
from backend.app.core.guards import require_role
from backend.app.services.rate_limit import rate_limit
from backend.app.domain.payments.gateway import PaystackClient, get_payment_gateway
from backend.app.domain.payments.initiator import PaymentInitiator
from backend.app.domain.payments.reconciler import PaymentReconciler
from backend.app.domain.payments.recorder import record_manual_payment
from backend.app.api.v1.endpoints.invoices import load_invoice_balance

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_initiator(gateway: PaystackClient = Depends(get_payment_gateway)) -> PaymentInitiator:
    return PaymentInitiator(gateway)


def get_payment_reconciler(gateway: PaystackClient = Depends(get_payment_gateway)) -> PaymentReconciler:
    return PaymentReconciler(gateway)


@router.post("/mobile-money", response_model=MobileMoneyPaymentResponse, response_model_exclude_none=True)
async def initiate_mobile_money_payment(
    payload: MobileMoneyPaymentRequest,
    current_user: dict = Depends(rate_limit("mobile-money")),
    initiator: PaymentInitiator = Depends(get_payment_initiator),
    db: AsyncSession = Depends(get_db)
):
    """
    Initiate a mobile money payment (MTN, Vodafone, AirtelTigo) for an invoice.

    The full outstanding balance is charged. The payer then approves on their
    phone (OTP prompt or USSD code) and the client polls the status endpoint
    with the returned reference.
    """
    result = await initiator.initiate(
        db,
        invoice_id=payload.invoice_id,
        provider=payload.provider,
        mobile_number=payload.mobile_number,
        current_user=current_user,
    )

    return MobileMoneyPaymentResponse(
        status=result.status,
        message=result.message,
        reference=result.reference,
        display_text=result.display_text,
        ussd_code=result.ussd_code,
        data=result.data or None,
    )


@router.get("/mobile-money", response_model=PaymentStatusResponse)
async def check_payment_status(
    reference: Optional[str] = Query(None, description="Transaction reference"),
    current_user: dict = Depends(get_current_user),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
    db: AsyncSession = Depends(get_db)
):
    """
    Check (and settle) a payment by reference.

    Settled transactions are answered from the database; anything else is
    verified with the gateway first.
    """
    if not reference:
        raise PaymentValidationError("reference is required", field="reference")

    result = await reconciler.reconcile(db, reference, current_user)

    return PaymentStatusResponse(
        status=result.status,
        reference=result.reference,
        amount=result.amount,
        paid_at=result.paid_at,
        message=result.message,
    )


@router.post("/card", response_model=CardCheckoutResponse)
async def initiate_card_checkout(
    payload: CardCheckoutRequest,
    current_user: dict = Depends(rate_limit("card-checkout")),
    initiator: PaymentInitiator = Depends(get_payment_initiator),
    db: AsyncSession = Depends(get_db)
):
    """Start a hosted card checkout; redirect the payer to authorization_url."""
    result = await initiator.initiate_checkout(db, invoice_id=payload.invoice_id, current_user=current_user)
    return CardCheckoutResponse(authorization_url=result.authorization_url, reference=result.reference)


@router.post("/record", response_model=InvoiceBalanceResponse)
async def record_payment(
    payload: ManualPaymentRequest,
    current_user: dict = Depends(require_role(ELEVATED_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Record an offline receipt against an invoice (elevated staff only)."""
    invoice = await record_manual_payment(
        db,
        invoice_id=payload.invoice_id,
        amount=payload.amount,
        method=payload.method,
        current_user=current_user,
        reference=payload.reference,
        notes=payload.notes,
    )
    return await load_invoice_balance(db, invoice)
