"""
Invoice Ledger (balance engine).

Pure domain operations over invoice balances. Nothing here touches the
database; persistence and locking belong to the callers (reconciler and
manual recorder).

Rules:
- outstanding = max(total - amount_paid, 0), always recomputed
- payment_status is a pure function of amount_paid vs total
- paid_at is stamped only when a credit brings the invoice to PAID
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from backend.app.models.payment_enums import InvoicePaymentStatus

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert to a Decimal rounded to cents. Floats go through str() to avoid binary noise."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(subtotal, tax=ZERO, discount=ZERO) -> Decimal:
    """total = subtotal + tax - discount."""
    return to_money(subtotal) + to_money(tax) - to_money(discount)


def outstanding(invoice) -> Decimal:
    """Balance still owed on an invoice, floored at zero."""
    return max(to_money(invoice.total) - to_money(invoice.amount_paid), ZERO)


def derive_status(amount_paid, total) -> InvoicePaymentStatus:
    paid = to_money(amount_paid)
    if paid <= ZERO:
        return InvoicePaymentStatus.UNPAID
    if paid < to_money(total):
        return InvoicePaymentStatus.PARTIALLY_PAID
    return InvoicePaymentStatus.PAID


@dataclass(frozen=True)
class Credit:
    """The invoice state after applying one credit."""
    amount_paid: Decimal
    status: InvoicePaymentStatus
    paid_at: Optional[datetime]


def apply_credit(invoice, amount, at: datetime) -> Credit:
    """
    Compute the new (amount_paid, status, paid_at) for crediting `amount`.

    Args:
        invoice: Anything with total, amount_paid and paid_at attributes
        amount: Positive credit amount
        at: Settlement time, used for paid_at when the credit completes payment

    Raises:
        ValueError: if amount is not positive
    """
    credit = to_money(amount)
    if credit <= ZERO:
        raise ValueError(f"Credit amount must be positive, got {amount}")

    new_amount_paid = to_money(invoice.amount_paid) + credit
    new_status = derive_status(new_amount_paid, invoice.total)

    paid_at = invoice.paid_at
    if new_status == InvoicePaymentStatus.PAID and paid_at is None:
        paid_at = at

    return Credit(amount_paid=new_amount_paid, status=new_status, paid_at=paid_at)
