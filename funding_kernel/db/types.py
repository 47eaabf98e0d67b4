"""
Module: funding_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money and
    rate columns.  Centralizes precision, rounding, and currency validation so
    that every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - ISO 4217 enforcement: validate_currency() rejects any code that is not a
      recognized 3-letter ISO 4217 currency.
    - Amounts are integers in minor units; round_minor_units() is the ONLY
      sanctioned way to turn a Decimal computation back into minor units.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

from funding_kernel.exceptions import InvalidCurrencyError


# Monetary amount in minor units (cents)
MinorUnits = Annotated[int, BigInteger]

# Exchange rate: 38 digits total, 18 decimal places
Rate = Annotated[Decimal, Numeric(38, 18)]

# Percentages (host fee percent, platform fee percent, match multiplier)
Percent = Annotated[Decimal, Numeric(9, 4)]

# ISO 4217 currency code (e.g., "USD", "EUR", "GBP")
Currency = Annotated[str, String(3)]


DEFAULT_ROUNDING = ROUND_HALF_UP


def round_minor_units(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> int:
    """
    Round a Decimal amount to whole minor units.

    ROUND_HALF_UP rounds halves away from zero, so -40.5 becomes -41 and
    40.5 becomes 41: negated inputs round to negated outputs.
    """
    return int(value.quantize(Decimal("1"), rounding=rounding))


def percent_of(amount: int, percent: Decimal | int | None) -> int:
    """Return ``percent`` percent of ``amount`` in minor units."""
    if not percent:
        return 0
    return round_minor_units(Decimal(amount) * Decimal(percent) / Decimal(100))


ISO_4217_CURRENCIES: set[str] = {
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "ARS", "BGN", "BRL", "CLP", "CNY", "COP", "CZK",
    "DKK", "EGP", "HKD", "HUF", "IDR", "ILS", "INR", "ISK",
    "KES", "KRW", "MAD", "MXN", "MYR", "NGN", "NOK", "PEN",
    "PHP", "PKR", "PLN", "RON", "RSD", "RUB", "SAR", "SEK",
    "SGD", "THB", "TRY", "TWD", "UAH", "UYU", "VND", "ZAR",
}


def validate_currency(currency: str) -> str:
    """
    Validate that a currency code is a supported ISO 4217 code.

    Returns:
        The validated currency code (uppercase).

    Raises:
        InvalidCurrencyError: If the currency code is not valid.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()

    if len(normalized) != 3 or normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)

    return normalized


def is_valid_currency(currency: str) -> bool:
    """Check if a currency code is a supported ISO 4217 code."""
    try:
        validate_currency(currency)
        return True
    except InvalidCurrencyError:
        return False
