"""
Stripe payment authority.

Holds are manual-capture PaymentIntents: the card is authorized when the
guest confirms the intent client-side with the returned client secret,
and nothing is charged until ``capture``. Every mutating call passes the
booking's idempotency key through to Stripe, which replays the original
response for a repeated key.

The stripe SDK is synchronous, so calls run in a worker thread.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import stripe

from gymbook.errors import ProcessorError, ValidationError
from gymbook.payments.base import PaymentAuthority
from gymbook.schemas.payment_schema import (
    AuthorizationNotice,
    AuthorizationStatus,
    HoldResult,
    OperationResult,
    PaymentAuthorization,
)

logger = logging.getLogger(__name__)

AUTHORIZED_EVENT = "payment_intent.amount_capturable_updated"

_PENDING_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
}

# Network, throttling and Stripe-side failures; safe to retry with the same key.
_RETRYABLE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def map_intent_status(intent: Any) -> AuthorizationStatus:
    """Map a PaymentIntent onto the hold lifecycle."""
    status = intent["status"]
    if status in _PENDING_STATUSES:
        return AuthorizationStatus.CREATED
    if status == "requires_capture":
        return AuthorizationStatus.AUTHORIZED
    if status == "succeeded":
        return AuthorizationStatus.CAPTURED
    if status == "canceled":
        # Stripe cancels uncaptured intents itself once the authorization lapses.
        if intent.get("cancellation_reason") == "automatic":
            return AuthorizationStatus.EXPIRED
        return AuthorizationStatus.RELEASED
    raise ProcessorError(f"Unknown PaymentIntent status {status!r}", "", retryable=False)


def _to_processor_error(exc: stripe.StripeError, idempotency_key: str) -> ProcessorError:
    retryable = isinstance(exc, _RETRYABLE_ERRORS)
    return ProcessorError(
        f"Stripe error ({type(exc).__name__}): {exc.user_message or exc}",
        idempotency_key,
        retryable=retryable,
    )


class StripePaymentAuthority(PaymentAuthority):
    """PaymentAuthority backed by Stripe PaymentIntents."""

    def __init__(self, api_key: str, hold_lifetime: timedelta = timedelta(hours=168)) -> None:
        if not api_key:
            raise ValueError("A Stripe secret key is required")
        self._api_key = api_key
        self._hold_lifetime = hold_lifetime

    async def _call(self, idempotency_key: str, func, /, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, api_key=self._api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.warning("Stripe call %s failed: %s", func.__name__, exc)
            raise _to_processor_error(exc, idempotency_key) from exc

    def _expires_at(self, intent: Any) -> datetime:
        created = datetime.fromtimestamp(intent["created"], tz=timezone.utc)
        return created + self._hold_lifetime

    async def create_hold(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> HoldResult:
        intent = await self._call(
            idempotency_key,
            stripe.PaymentIntent.create,
            amount=amount,
            currency=currency.lower(),
            capture_method="manual",
            automatic_payment_methods={"enabled": True},
            metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
        logger.info("Stripe hold %s created", intent["id"])
        return HoldResult(
            external_ref=intent["id"],
            status=map_intent_status(intent),
            expires_at=self._expires_at(intent),
            client_secret=intent["client_secret"],
        )

    async def capture(self, external_ref: str, idempotency_key: str) -> OperationResult:
        try:
            intent = await self._call(
                idempotency_key,
                stripe.PaymentIntent.capture,
                external_ref,
                idempotency_key=idempotency_key,
            )
        except ProcessorError as exc:
            intent = await self._settled_intent(exc, external_ref, "succeeded")
        logger.info("Stripe hold %s captured", external_ref)
        return OperationResult(external_ref=external_ref, status=map_intent_status(intent))

    async def release(self, external_ref: str, idempotency_key: str) -> OperationResult:
        try:
            intent = await self._call(
                idempotency_key,
                stripe.PaymentIntent.cancel,
                external_ref,
                idempotency_key=idempotency_key,
            )
        except ProcessorError as exc:
            intent = await self._settled_intent(exc, external_ref, "canceled")
        logger.info("Stripe hold %s released", external_ref)
        return OperationResult(external_ref=external_ref, status=map_intent_status(intent))

    async def get_authorization(self, external_ref: str) -> PaymentAuthorization:
        intent = await self._call("", stripe.PaymentIntent.retrieve, external_ref)
        return PaymentAuthorization(
            external_ref=intent["id"],
            amount=intent["amount"],
            currency=intent["currency"].upper(),
            status=map_intent_status(intent),
            created_at=datetime.fromtimestamp(intent["created"], tz=timezone.utc),
            expires_at=self._expires_at(intent),
        )

    async def _settled_intent(self, exc: ProcessorError, external_ref: str, wanted: str) -> Any:
        """Treat "already captured" / "already canceled" as success."""
        if exc.retryable:
            raise exc
        intent = await self._call(exc.idempotency_key, stripe.PaymentIntent.retrieve, external_ref)
        if intent["status"] != wanted:
            raise exc
        logger.info("Stripe intent %s was already %s", external_ref, wanted)
        return intent


def parse_authorization_webhook(
    payload: Union[bytes, str], signature: str, secret: str
) -> Optional[AuthorizationNotice]:
    """
    Verify a Stripe webhook and extract an authorization notice.

    Returns None for event types that do not signal an authorized hold.

    Raises:
        ValidationError: The payload or its signature is invalid, or the
            intent carries no booking reference.
    """
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise ValidationError("Invalid webhook signature") from exc

    if event["type"] != AUTHORIZED_EVENT:
        logger.debug("Ignoring Stripe event %s", event["type"])
        return None

    intent = event["data"]["object"]
    booking_id = (intent.get("metadata") or {}).get("booking_id")
    if not booking_id:
        raise ValidationError(f"PaymentIntent {intent['id']} has no booking_id metadata")
    return AuthorizationNotice(booking_id=booking_id, external_ref=intent["id"])
