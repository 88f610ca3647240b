"""
Payment Reconciler.

Brings a PaymentTransaction in line with the gateway and applies its
amount to the owning invoice exactly once.

Credit-once guarantee (safe under concurrent polls for one reference):
1. The transaction is claimed with a conditional UPDATE that only matches
   while its status is still non-terminal. A writer that matches no row
   lost the race and simply re-reads.
2. The invoice row is locked (SELECT ... FOR UPDATE) before its balance is
   read, so credits from different transactions serialize.
3. payments.reference is unique, so a second ledger insert for the same
   reference fails and rolls the whole unit back.
All three happen in one database transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import ownership_guard
from backend.app.domain.payments import ledger
from backend.app.domain.payments.gateway import PaystackClient, GatewayResult
from backend.app.models.invoice import Invoice
from backend.app.models.payment import Payment
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.payment_enums import TransactionStatus, TERMINAL_TRANSACTION_STATUSES

logger = logging.getLogger(__name__)

PROVIDER_LABELS = {
    "MTN": "MTN",
    "VODAFONE": "Vodafone",
    "AIRTELTIGO": "AirtelTigo",
}


@dataclass(frozen=True)
class ReconciliationResult:
    status: str
    reference: str
    amount: Decimal
    paid_at: Optional[datetime]
    message: Optional[str] = None


async def load_transaction(db: AsyncSession, reference: str) -> Optional[PaymentTransaction]:
    result = await db.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.reference == reference)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _ledger_notes(transaction: PaymentTransaction) -> str:
    if transaction.provider is not None:
        return f"Mobile Money payment via {PROVIDER_LABELS[transaction.provider.value]}"
    return f"{transaction.channel.value.replace('_', ' ').title()} payment"


async def apply_credit_transition(db: AsyncSession, transaction: PaymentTransaction) -> bool:
    """
    Settle a transaction the gateway reported as successful.

    The single code path that moves money into an invoice for gateway
    payments. Any future receiver of gateway notifications must call this
    instead of crediting invoices itself.

    Returns:
        True if this call performed the credit, False if the transaction was
        already terminal (another writer won, or it had failed)
    """
    reference = transaction.reference
    settled_at = datetime.now(timezone.utc)

    claim = await db.execute(
        update(PaymentTransaction)
        .where(
            PaymentTransaction.id == transaction.id,
            PaymentTransaction.status.notin_(TERMINAL_TRANSACTION_STATUSES),
        )
        .values(status=TransactionStatus.SUCCESS, paid_at=settled_at)
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount != 1:
        await db.rollback()
        logger.info("Transaction %s already terminal, skipping credit", reference)
        return False

    locked = await db.execute(
        select(Invoice)
        .where(Invoice.id == transaction.invoice_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    invoice = locked.scalar_one()

    credit = ledger.apply_credit(invoice, transaction.amount, at=settled_at)
    invoice.amount_paid = credit.amount_paid
    invoice.payment_status = credit.status
    invoice.paid_at = credit.paid_at
    invoice.payment_method = transaction.payment_method.value

    db.add(Payment(
        invoice_id=invoice.id,
        amount=transaction.amount,
        method=transaction.payment_method.value,
        reference=reference,
        notes=_ledger_notes(transaction),
    ))

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Ledger entry for %s already exists, credit rolled back", reference)
        return False

    logger.info("Settled %s: credited %s to invoice %s (now %s, status %s)",
                reference, transaction.amount, invoice.invoice_number,
                credit.amount_paid, credit.status.value)
    return True


class PaymentReconciler:

    def __init__(self, gateway: PaystackClient):
        self.gateway = gateway

    async def reconcile(self, db: AsyncSession, reference: str, current_user: dict) -> ReconciliationResult:
        """
        Verify a transaction with the gateway and settle it on first success.

        Raises:
            ResourceNotFoundError, InsufficientPermissionsError, GatewayError
        """
        transaction = await load_transaction(db, reference)
        if not transaction:
            raise ResourceNotFoundError("Transaction", reference)

        ownership_guard.enforce(transaction.invoice.customer.user_id, current_user, "transaction")

        if transaction.status == TransactionStatus.SUCCESS:
            return self._settled_result(transaction)

        report = await self.gateway.verify(reference)
        await self._record_report(db, transaction, report)

        if report.status == TransactionStatus.SUCCESS:
            await apply_credit_transition(db, transaction)
        elif report.status == TransactionStatus.FAILED:
            logger.info("Gateway reported %s as %s: %s", reference, report.gateway_status, report.message)

        transaction = await load_transaction(db, reference)
        return ReconciliationResult(
            status=transaction.status.value,
            reference=transaction.reference,
            amount=transaction.amount,
            paid_at=transaction.paid_at,
            message=report.message,
        )

    @staticmethod
    def _settled_result(transaction: PaymentTransaction) -> ReconciliationResult:
        return ReconciliationResult(
            status=TransactionStatus.SUCCESS.value,
            reference=transaction.reference,
            amount=transaction.amount,
            paid_at=transaction.paid_at,
        )

    @staticmethod
    async def _record_report(db: AsyncSession, transaction: PaymentTransaction, report: GatewayResult) -> None:
        """
        Store what the gateway said. The payload is kept until the transaction
        settles; the status moves only while non-terminal, and never to SUCCESS
        (that is the credit transition's job).
        """
        await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction.id,
                PaymentTransaction.status != TransactionStatus.SUCCESS,
            )
            .values(gateway_status=report.gateway_status, gateway_response=report.envelope)
            .execution_options(synchronize_session=False)
        )
        if report.status != TransactionStatus.SUCCESS:
            await db.execute(
                update(PaymentTransaction)
                .where(
                    PaymentTransaction.id == transaction.id,
                    PaymentTransaction.status.notin_(TERMINAL_TRANSACTION_STATUSES),
                )
                .values(status=report.status)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
