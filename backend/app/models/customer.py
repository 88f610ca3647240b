"""
Customer database model.

Minimal projection of the platform's customer record: enough to resolve
invoice ownership and the e-mail the gateway requires.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Authenticated user behind this customer
    user_id = Column(Integer, unique=True, index=True, nullable=False)

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Customer(id={self.id}, user_id={self.user_id}, email='{self.email}')>"
