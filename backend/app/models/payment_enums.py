"""
Payment enumerations.
"""

import enum


class InvoicePaymentStatus(str, enum.Enum):
    """Invoice payment status enumeration."""
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"  # Set by the overdue job, outside this service
    REFUNDED = "REFUNDED"  # Set by the refund flow, outside this service


class TransactionStatus(str, enum.Enum):
    """
    Gateway transaction status, translated from gateway vocabulary by the
    gateway adapter. SUCCESS and FAILED are terminal.
    """
    PENDING = "pending"
    AWAITING_OTP = "awaiting_otp"
    AWAITING_USSD = "awaiting_ussd"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_TRANSACTION_STATUSES = (TransactionStatus.SUCCESS, TransactionStatus.FAILED)


class PaymentChannel(str, enum.Enum):
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class MobileMoneyProvider(str, enum.Enum):
    MTN = "MTN"
    VODAFONE = "VODAFONE"
    AIRTELTIGO = "AIRTELTIGO"


class PaymentMethod(str, enum.Enum):
    """Channel plus provider, as recorded on invoices and transactions."""
    MOBILE_MONEY_MTN = "MOBILE_MONEY_MTN"
    MOBILE_MONEY_VODAFONE = "MOBILE_MONEY_VODAFONE"
    MOBILE_MONEY_AIRTELTIGO = "MOBILE_MONEY_AIRTELTIGO"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class ManualPaymentMethod(str, enum.Enum):
    """Methods staff may record for receipts taken outside the gateway."""
    CARD = "Card"
    MOBILE_MONEY = "Mobile Money"
    CASH = "Cash"
    CHEQUE = "Cheque"
