"""
Money helpers shared by the ledger models and the currency normalizer.

Amounts are always Decimal. A currency's "minor unit" is the number of
decimal places of its smallest unit (cents for USD, none for JPY).
"""

import re
from decimal import ROUND_HALF_EVEN, Decimal


CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")

DEFAULT_MINOR_UNIT = 2

# ISO 4217 exponents that differ from the default of 2
MINOR_UNITS = {
    "BHD": 3,
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "IQD": 3,
    "ISK": 0,
    "JOD": 3,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "PYG": 0,
    "RWF": 0,
    "TND": 3,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
}


def normalize_currency_code(code: str) -> str:
    """
    Upper-case and check an ISO 4217 currency code.

    Raises ValueError for anything that is not three letters.
    """
    if not isinstance(code, str):
        raise ValueError("Currency code must be a string")
    normalized = code.strip().upper()
    if not CURRENCY_CODE_PATTERN.match(normalized):
        raise ValueError(f"Invalid ISO currency code: {code!r}")
    return normalized


def minor_unit(currency: str) -> int:
    """Number of decimal places of the currency's smallest unit."""
    return MINOR_UNITS.get(currency.upper(), DEFAULT_MINOR_UNIT)


def smallest_unit(currency: str) -> Decimal:
    """The smallest representable amount, e.g. Decimal('0.01') for USD."""
    return Decimal(1).scaleb(-minor_unit(currency))


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round to the currency's smallest unit using banker's rounding."""
    return amount.quantize(smallest_unit(currency), rounding=ROUND_HALF_EVEN)


def decimal_places(amount: Decimal) -> int:
    """Number of significant decimal places in a Decimal."""
    exponent = amount.normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        return 0
    return max(0, -exponent)
