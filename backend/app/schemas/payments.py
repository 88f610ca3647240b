"""
Payment schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional, List, Dict, Any
from backend.app.models.payment_enums import ManualPaymentMethod


class MobileMoneyPaymentRequest(BaseModel):
    """Schema for initiating a mobile money payment. Accepts camelCase keys too."""
    invoice_id: int = Field(..., alias="invoiceId")
    provider: str = Field(..., min_length=1)
    mobile_number: str = Field(..., alias="mobileNumber", min_length=1)

    class Config:
        populate_by_name = True


class MobileMoneyPaymentResponse(BaseModel):
    """
    Initiation outcome.

    pending_otp carries display_text; pending_ussd carries ussd_code and
    display_text; any other status carries the gateway data.
    """
    status: str
    message: str
    reference: str
    display_text: Optional[str] = None
    ussd_code: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class PaymentStatusResponse(BaseModel):
    """Verification outcome for a transaction reference."""
    status: str
    reference: str
    amount: float
    paid_at: Optional[datetime]
    message: Optional[str] = None


class CardCheckoutRequest(BaseModel):
    invoice_id: int = Field(..., alias="invoiceId")

    class Config:
        populate_by_name = True


class CardCheckoutResponse(BaseModel):
    authorization_url: str
    reference: str


class ManualPaymentRequest(BaseModel):
    """Schema for staff recording an offline receipt."""
    invoice_id: int = Field(..., alias="invoiceId")
    amount: float = Field(..., gt=0)
    method: ManualPaymentMethod
    reference: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class PaymentEntryResponse(BaseModel):
    id: int
    amount: float
    method: str
    reference: Optional[str]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceBalanceResponse(BaseModel):
    """Invoice totals with the outstanding balance computed on read."""
    id: int
    invoice_number: str
    customer_id: int
    subtotal: float
    tax: float
    discount: float
    total: float
    amount_paid: float
    outstanding: float
    payment_status: str
    payment_method: Optional[str]
    transaction_ref: Optional[str]
    due_date: Optional[date]
    paid_at: Optional[datetime]
    payments: List[PaymentEntryResponse] = []
