"""
Invoice Balance API Endpoints.

Read-only view of an invoice's ledger state.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.db.session import get_db
from backend.app.models.invoice import Invoice
from backend.app.models.payment import Payment
from backend.app.schemas.payments import InvoiceBalanceResponse, PaymentEntryResponse
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import ownership_guard
from backend.app.domain.payments import ledger

router = APIRouter(prefix="/invoices", tags=["Invoices"])


async def load_invoice_balance(db: AsyncSession, invoice: Invoice) -> InvoiceBalanceResponse:
    """Build the balance view from a fresh read of the invoice's ledger entries."""
    result = await db.execute(
        select(Payment).where(Payment.invoice_id == invoice.id).order_by(Payment.id)
    )
    payments = result.scalars().all()

    return InvoiceBalanceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        customer_id=invoice.customer_id,
        subtotal=invoice.subtotal,
        tax=invoice.tax,
        discount=invoice.discount,
        total=invoice.total,
        amount_paid=invoice.amount_paid,
        outstanding=ledger.outstanding(invoice),
        payment_status=invoice.payment_status.value,
        payment_method=invoice.payment_method,
        transaction_ref=invoice.transaction_ref,
        due_date=invoice.due_date,
        paid_at=invoice.paid_at,
        payments=[PaymentEntryResponse.model_validate(p) for p in payments],
    )


@router.get("/{invoice_id}", response_model=InvoiceBalanceResponse)
async def get_invoice_balance(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get an invoice with its payments and outstanding balance.

    Customers see their own invoices; any staff member may look up any invoice.
    """
    result = await db.execute(select(Invoice).where(Invoice.id == invoice_id))
    invoice = result.scalar_one_or_none()

    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)

    ownership_guard.enforce_read(invoice.customer.user_id, current_user, "invoice")

    return await load_invoice_balance(db, invoice)
