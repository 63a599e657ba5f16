from datetime import timedelta

from gymbook.config import PaymentConfig
from gymbook.payments.base import PaymentAuthority, idempotency_key
from gymbook.payments.in_memory import InMemoryPaymentAuthority
from gymbook.payments.retry import retry_processor_call
from gymbook.payments.stripe_authority import StripePaymentAuthority, parse_authorization_webhook


def build_payment_authority(config: PaymentConfig) -> PaymentAuthority:
    """Construct the processor adapter selected by PAYMENT_PROVIDER."""
    lifetime = timedelta(hours=config.hold_lifetime_hours)
    if config.provider == "stripe":
        return StripePaymentAuthority(config.stripe_secret_key, hold_lifetime=lifetime)
    return InMemoryPaymentAuthority(hold_lifetime=lifetime)


__all__ = [
    "PaymentAuthority",
    "InMemoryPaymentAuthority",
    "StripePaymentAuthority",
    "build_payment_authority",
    "idempotency_key",
    "parse_authorization_webhook",
    "retry_processor_call",
]
