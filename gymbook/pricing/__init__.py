from gymbook.currency import ZERO_DECIMAL_CURRENCIES, format_amount, round_amount
from gymbook.pricing.rate_engine import anchor_price, price_for

__all__ = [
    "price_for",
    "anchor_price",
    "round_amount",
    "format_amount",
    "ZERO_DECIMAL_CURRENCIES",
]
