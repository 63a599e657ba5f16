"""Currency-aware rounding and display for amounts held in minor units."""

from decimal import ROUND_HALF_UP, Decimal

# Currencies whose minor unit is the whole unit.
ZERO_DECIMAL_CURRENCIES = frozenset({"THB", "JPY", "VND", "IDR", "KRW"})


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places between the major and the minor unit."""
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def round_amount(amount: Decimal, currency: str) -> int:
    """
    Round an exact minor-unit amount once, for charging.

    Zero-decimal currencies round to the nearest whole unit; all others
    round to 2 decimal places of the major unit. Either way the result
    is a whole number of minor units. Halves round up.
    """
    if amount < 0:
        raise ValueError(f"amount must not be negative, got {amount}")
    exponent = minor_unit_exponent(currency)
    major = amount.scaleb(-exponent)
    rounded = major.quantize(Decimal(1).scaleb(-exponent), rounding=ROUND_HALF_UP)
    return int(rounded.scaleb(exponent))


def format_amount(amount: int, currency: str) -> str:
    """
    Format a minor-unit amount for messages.

    Examples:
        >>> format_amount(150000, "THB")
        'THB 150,000'
        >>> format_amount(10000, "USD")
        'USD 100.00'
    """
    exponent = minor_unit_exponent(currency)
    if exponent == 0:
        return f"{currency.upper()} {amount:,}"
    major = Decimal(amount).scaleb(-exponent)
    return f"{currency.upper()} {major:,.{exponent}f}"
