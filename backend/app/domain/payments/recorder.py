"""
Manual Payment Recorder.

Staff record receipts taken outside the gateway (cash at the counter,
cheques, card terminals). Same ledger rules as gateway settlements: the
invoice row is locked, the credit is computed by the ledger, and the
Payment insert shares the unique-reference guard.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError, PaymentValidationError, DuplicatePaymentError
from backend.app.domain.payments import ledger
from backend.app.models.invoice import Invoice
from backend.app.models.payment import Payment
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.payment_enums import ManualPaymentMethod

logger = logging.getLogger(__name__)


async def record_manual_payment(
    db: AsyncSession,
    invoice_id: int,
    amount,
    method: ManualPaymentMethod,
    current_user: dict,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Credit an invoice with a receipt recorded by staff.

    Role checks happen at the endpoint (elevated staff only).

    Returns:
        The updated invoice

    Raises:
        PaymentValidationError: non-positive amount
        ResourceNotFoundError: unknown invoice
        DuplicatePaymentError: reference already used by a ledger entry or a gateway transaction
    """
    credit_amount = ledger.to_money(amount)
    if credit_amount <= 0:
        raise PaymentValidationError("Amount must be positive", field="amount")

    # Gateway transaction references are reserved for their own settlement
    if reference:
        taken = await db.execute(select(PaymentTransaction.id).where(PaymentTransaction.reference == reference))
        if taken.scalar_one_or_none() is not None:
            raise DuplicatePaymentError(reference)

    locked = await db.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    invoice = locked.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)

    credit = ledger.apply_credit(invoice, credit_amount, at=datetime.now(timezone.utc))
    invoice.amount_paid = credit.amount_paid
    invoice.payment_status = credit.status
    invoice.paid_at = credit.paid_at
    invoice.payment_method = method.value
    if reference:
        invoice.transaction_ref = reference

    db.add(Payment(
        invoice_id=invoice.id,
        amount=credit_amount,
        method=method.value,
        reference=reference or None,
        notes=notes,
        recorded_by=current_user["user_id"],
    ))

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicatePaymentError(reference)

    logger.info("User %s recorded %s payment of %s on invoice %s",
                current_user["user_id"], method.value, credit_amount, invoice.invoice_number)
    return invoice
