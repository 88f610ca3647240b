"""
Payment (ledger entry) database model.

Append-only record of one confirmed receipt of funds against an invoice.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Payment(Base):
    """
    Payment model.

    NO updates or deletions allowed. The unique reference is the credit-once
    guard: a settled gateway transaction can produce at most one row.
    Manual receipts without a reference are allowed (NULLs do not collide).
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(64), nullable=False)
    reference = Column(String(128), unique=True, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by = Column(Integer, nullable=True)  # staff user for manual receipts

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
    )
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount}, reference='{self.reference}')>"
