"""
Currency amount normalization.

Converts between decimal major-unit amounts (what orders and plans store)
and integer minor-unit amounts (what Stripe's API speaks), using an
ISO 4217 minor-unit exponent table. Both directions use the same table,
so any amount the table can express round-trips exactly.

Usage:
    from billing.currency import to_minor_units, from_minor_units

    to_minor_units(Decimal("19.99"), "USD")   # 1999
    to_minor_units(Decimal("500"), "JPY")     # 500
    from_minor_units(1999, "usd")             # Decimal("19.99")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from billing.exceptions import UnsupportedCurrencyError

# ISO 4217 minor-unit exponents for the currencies Stripe settles in.
# Stripe treats a few 2-decimal ISO currencies as zero-decimal; those
# follow Stripe's table since it is the side doing the arithmetic.
MINOR_UNIT_EXPONENTS: dict[str, int] = {
    # Zero-decimal
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "MGA": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    # Three-decimal
    "BHD": 3,
    "JOD": 3,
    "KWD": 3,
    "OMR": 3,
    "TND": 3,
    # Two-decimal
    "AED": 2,
    "ARS": 2,
    "AUD": 2,
    "BGN": 2,
    "BRL": 2,
    "CAD": 2,
    "CHF": 2,
    "CNY": 2,
    "COP": 2,
    "CZK": 2,
    "DKK": 2,
    "EGP": 2,
    "EUR": 2,
    "GBP": 2,
    "HKD": 2,
    "HUF": 2,
    "IDR": 2,
    "ILS": 2,
    "INR": 2,
    "MXN": 2,
    "MYR": 2,
    "NGN": 2,
    "NOK": 2,
    "NZD": 2,
    "PEN": 2,
    "PHP": 2,
    "PKR": 2,
    "PLN": 2,
    "RON": 2,
    "RUB": 2,
    "SAR": 2,
    "SEK": 2,
    "SGD": 2,
    "THB": 2,
    "TRY": 2,
    "TWD": 2,
    "UAH": 2,
    "USD": 2,
    "ZAR": 2,
}


def minor_unit_exponent(currency: str) -> int:
    """
    Look up the minor-unit exponent for a currency code.

    Raises:
        UnsupportedCurrencyError: The code is not in the table
    """
    code = (currency or "").upper()
    try:
        return MINOR_UNIT_EXPONENTS[code]
    except KeyError:
        raise UnsupportedCurrencyError(
            f"Unsupported currency: {currency}",
            details={"currency": currency},
        ) from None


def is_supported(currency: str | None) -> bool:
    return bool(currency) and currency.upper() in MINOR_UNIT_EXPONENTS


def to_minor_units(amount: Decimal | int | str, currency: str) -> int:
    """
    Convert a major-unit amount to an integer minor-unit amount.

    Rounds half-up at the currency's precision. Floats go through str() first
    so binary artifacts never reach the rounding.

    Args:
        amount: Amount in major units (e.g. dollars)
        currency: ISO 4217 code, any case

    Returns:
        Amount in minor units (e.g. cents)
    """
    exponent = minor_unit_exponent(currency)
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int(value.scaleb(exponent).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    """
    Convert an integer minor-unit amount back to major units.

    The result carries exactly `exponent` decimal places.
    """
    exponent = minor_unit_exponent(currency)
    return Decimal(int(amount)).scaleb(-exponent)
