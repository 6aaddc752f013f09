import re
from decimal import Decimal, InvalidOperation
from typing import Union

x402_VERSION = 2

# Header names
X402_VERSION_HEADER = "X-X402-Version"
PAYMENT_HEADER = "X-PAYMENT"
LEGACY_PAYMENT_HEADER = "X-Payment-Signature"
PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
SETTLEMENT_ID_HEADER = "X-Settlement-ID"
PAYMENT_STATUS_HEADER = "X-Payment-Status"

PAYMENT_STATUS_VERIFIED = "verified"

# Routing
X402_ROUTE_PREFIX = "x402"
REQUIREMENTS_SEGMENT = "requirements"
UNKNOWN_SERVICE = "unknown"

DEFAULT_FACILITATOR_URL = "https://x402.coinbase.com"
DEFAULT_CREDENTIALS_FILENAME = ".x402-credentials"

Percent = Union[int, str, Decimal]

ATOMIC_AMOUNT = re.compile(r"[0-9]+")


def _to_decimal(value: Union[int, str, Decimal], field: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field} must be a decimal number, got {value!r}")
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result


def apply_discount(amount: str, discount_percent: Percent) -> str:
    """Apply a percentage discount to an atomic-unit amount.

    Args:
        amount: Base amount in atomic units, as an integer string
        discount_percent: Discount between 0 and 100 (e.g. 15 or "12.5")

    Returns:
        The discounted amount as an integer string

    Raises:
        ValueError: If the inputs are out of range or the discounted amount
            is not a whole number of atomic units
    """
    # Plain digits only; Decimal also parses "1e3" and "1000.0"
    if not isinstance(amount, str) or not ATOMIC_AMOUNT.fullmatch(amount):
        raise ValueError(f"amount must be a non-negative integer string, got {amount!r}")
    base = Decimal(amount)

    percent = _to_decimal(discount_percent, "discount_percent")
    if percent < 0 or percent > 100:
        raise ValueError(f"discount_percent must be between 0 and 100, got {discount_percent!r}")

    discounted = base * (Decimal(100) - percent) / Decimal(100)
    if discounted != discounted.to_integral_value():
        raise ValueError(
            f"A {format_percent(percent)} discount on {amount} atomic units "
            f"is not a whole number of atomic units ({discounted})"
        )
    return str(int(discounted))


def format_percent(discount_percent: Percent) -> str:
    """Render a discount for display, e.g. ``15`` -> ``"15%"``."""
    percent = _to_decimal(discount_percent, "discount_percent").normalize()
    # normalize() turns 10 into 1E+1
    if percent == percent.to_integral_value():
        percent = percent.quantize(Decimal(1))
    return f"{percent}%"
