"""
Payment Transaction database model.

One row per charge the gateway accepted. Created by the initiator, advanced
by the reconciler. The reference is the idempotency key shared with the
gateway.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.payment_enums import (
    TransactionStatus, PaymentChannel, PaymentMethod, MobileMoneyProvider
)


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    reference = Column(String(128), unique=True, index=True, nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GHS")
    channel = Column(Enum(PaymentChannel), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)

    # Mobile money specifics
    mobile_money_number = Column(String(20), nullable=True)
    provider = Column(Enum(MobileMoneyProvider), nullable=True)

    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    gateway_status = Column(String(64), nullable=True)  # last literal reported by the gateway
    gateway_response = Column(JSON, nullable=True)  # versioned envelope, see domain.payments.gateway

    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    invoice = relationship("Invoice", lazy="joined", innerjoin=True)

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<PaymentTransaction(reference='{self.reference}', status='{self.status.value}', amount={self.amount})>"
