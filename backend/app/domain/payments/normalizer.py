"""
Phone and amount normalization for mobile money charges.

Pure functions: no I/O, no clock. Validation failures raise
PaymentValidationError before anything reaches the gateway.
"""

import re
from decimal import Decimal, ROUND_HALF_UP

from backend.app.core.exceptions import PaymentValidationError
from backend.app.models.payment_enums import MobileMoneyProvider, PaymentMethod

COUNTRY_CODE = "233"

# Optional 0 or 233 prefix, a network digit 2-5, then 8 digits
GHANA_MOBILE_PATTERN = re.compile(r"^(0|233)?[2-5][0-9]{8}$")

_WHITESPACE = re.compile(r"\s+")

PROVIDER_CODES = {
    "mtn": MobileMoneyProvider.MTN,
    "vod": MobileMoneyProvider.VODAFONE,
    "tgo": MobileMoneyProvider.AIRTELTIGO,
}

GATEWAY_PROVIDER_CODES = {provider: code for code, provider in PROVIDER_CODES.items()}

PROVIDER_PAYMENT_METHODS = {
    MobileMoneyProvider.MTN: PaymentMethod.MOBILE_MONEY_MTN,
    MobileMoneyProvider.VODAFONE: PaymentMethod.MOBILE_MONEY_VODAFONE,
    MobileMoneyProvider.AIRTELTIGO: PaymentMethod.MOBILE_MONEY_AIRTELTIGO,
}


def parse_provider(code: str) -> MobileMoneyProvider:
    """Map a caller-supplied provider code (mtn, vod, tgo; any case) to a provider."""
    provider = PROVIDER_CODES.get((code or "").strip().lower())
    if provider is None:
        raise PaymentValidationError("Invalid provider. Must be mtn, vod, or tgo", field="provider")
    return provider


def strip_mobile_number(raw: str) -> str:
    return _WHITESPACE.sub("", raw or "")


def validate_mobile_number(raw: str) -> str:
    """
    Validate a Ghanaian mobile number.

    Returns:
        The number with whitespace removed

    Raises:
        PaymentValidationError: if the number does not match the national pattern
    """
    number = strip_mobile_number(raw)
    if not GHANA_MOBILE_PATTERN.match(number):
        raise PaymentValidationError("Invalid Ghana mobile number format", field="mobile_number")
    return number


def normalize_mobile_number(raw: str) -> str:
    """
    Rewrite a valid mobile number into the 233XXXXXXXXX form the gateway expects.

    "0241018947" -> "233241018947"
    "241018947" -> "233241018947"
    "233241018947" -> "233241018947"
    """
    number = validate_mobile_number(raw)
    if number.startswith("0"):
        return COUNTRY_CODE + number[1:]
    # A bare subscriber number such as 233456789 also starts with 233; length decides
    if len(number) == len(COUNTRY_CODE) + 9:
        return number
    return COUNTRY_CODE + number


def to_minor_units(amount) -> int:
    """Convert a currency amount (e.g. cedis) to minor units (pesewas), rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
