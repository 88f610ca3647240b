"""
Invoice database model.

Created by the external billing flow; within this service it is mutated
only through the invoice ledger.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Date, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.payment_enums import InvoicePaymentStatus


class Invoice(Base):
    """
    Invoice model.

    total = subtotal + tax - discount.
    payment_status is derived from amount_paid vs total (see domain.payments.ledger).
    transaction_ref is the last attempted gateway reference; informational only.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_number = Column(String(64), unique=True, index=True, nullable=False)

    # Ownership
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)
    service_id = Column(Integer, nullable=True)  # Billable service, owned elsewhere

    # Financials
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)

    # Payment state
    payment_status = Column(
        Enum(InvoicePaymentStatus), default=InvoicePaymentStatus.UNPAID, nullable=False, index=True
    )
    payment_method = Column(String(64), nullable=True)
    transaction_ref = Column(String(128), nullable=True)

    due_date = Column(Date, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", lazy="joined", innerjoin=True)
    payments = relationship("Payment", back_populates="invoice", order_by="Payment.id")

    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="amount_paid_non_negative"),
    )
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<Invoice(number='{self.invoice_number}', total={self.total}, paid={self.amount_paid})>"
