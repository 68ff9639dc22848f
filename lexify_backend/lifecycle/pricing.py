"""
Price parsing and ceiling rules.

Offer prices and maximum prices arrive as free text ("1 200,50", "EUR 950",
"1,200.50") as well as numbers. Anything that does not parse is treated as
"no price" and never wins by default.
"""

import enum
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_NON_NUMERIC = re.compile(r"[^\d.,-]")


class PricingMode(str, enum.Enum):
    """Pricing mode derived from the request's payment rate"""
    FIXED_FEE = "fixed_fee"
    HOURLY = "hourly"


def parse_price(value: Any) -> Optional[Decimal]:
    """
    Convert a price (number or text) to Decimal.

    Returns None for missing, empty, non-finite or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, (int, float)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None

    if not isinstance(value, str):
        return None

    cleaned = _NON_NUMERIC.sub("", value)
    if not cleaned:
        return None

    if "," in cleaned and "." in cleaned:
        # The last separator is the decimal point: "1,200.50" and "1.200,50"
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif cleaned.count(",") == 1:
        # "1200,50" - decimal comma
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def pricing_mode(payment_rate: Optional[str]) -> PricingMode:
    """Hourly if the payment rate mentions an hourly rate, otherwise fixed fee."""
    if payment_rate and "hourly" in payment_rate.lower():
        return PricingMode.HOURLY
    return PricingMode.FIXED_FEE


def effective_ceiling(maximum_price: Any, payment_rate: Optional[str]) -> Optional[Decimal]:
    """
    Ceiling used to gate automatic awards.

    Hourly-rate requests are never ceiling-gated; fixed-fee requests use the
    purchaser's maximum price when it parses.
    """
    if pricing_mode(payment_rate) == PricingMode.HOURLY:
        return None
    return parse_price(maximum_price)
