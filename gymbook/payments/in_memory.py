"""
In-memory payment authority.

Behaves like a manual-capture card processor: holds start in ``created``
until the guest authenticates, then become ``authorized`` and can be
captured or released until they expire. Idempotency is enforced the
way a real processor does it, by remembering the outcome of every
idempotency key and replaying it.

Used by the console demo and by tests. Supports failure injection so
retry paths can be exercised without a network.
"""

import asyncio
import logging
import secrets
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from gymbook.errors import ProcessorError
from gymbook.payments.base import PaymentAuthority
from gymbook.schemas.payment_schema import (
    AuthorizationStatus,
    HoldResult,
    OperationResult,
    PaymentAuthorization,
)

logger = logging.getLogger(__name__)

Outcome = Union[HoldResult, OperationResult, ProcessorError]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Hold:
    external_ref: str
    amount: int
    currency: str
    status: AuthorizationStatus
    created_at: datetime
    expires_at: datetime
    client_secret: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class _InjectedFailure:
    remaining: int
    retryable: bool
    after_effect: bool


class InMemoryPaymentAuthority(PaymentAuthority):
    """Manual-capture processor kept in a dict."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        hold_lifetime: timedelta = timedelta(hours=168),
    ) -> None:
        self._clock = clock
        self._hold_lifetime = hold_lifetime
        self._holds: dict[str, _Hold] = {}
        self._outcomes: dict[str, tuple[tuple, Outcome]] = {}
        self._failures: dict[str, _InjectedFailure] = {}
        self.calls: Counter[str] = Counter()

    # --- Test controls ---

    def fail_next(
        self,
        operation: str,
        times: int = 1,
        *,
        retryable: bool = True,
        after_effect: bool = False,
    ) -> None:
        """Make the next ``times`` calls to ``operation`` raise ProcessorError.

        With ``after_effect`` the processor applies the operation and only
        the response is lost, like a timeout after the request landed.
        """
        self._failures[operation] = _InjectedFailure(times, retryable, after_effect)

    def authenticate(self, external_ref: str) -> None:
        """Simulate the guest completing card authentication client-side."""
        hold = self._require(external_ref, "authenticate")
        if hold.status == AuthorizationStatus.CREATED:
            hold.status = AuthorizationStatus.AUTHORIZED

    def hold_for(self, external_ref: str) -> Optional[PaymentAuthorization]:
        hold = self._holds.get(external_ref)
        return self._snapshot(hold) if hold else None

    # --- PaymentAuthority ---

    async def create_hold(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> HoldResult:
        self.calls["create_hold"] += 1
        await asyncio.sleep(0)
        params = ("create_hold", amount, currency.upper())

        def apply() -> HoldResult:
            now = self._clock()
            ref = f"pi_{secrets.token_hex(8)}"
            hold = _Hold(
                external_ref=ref,
                amount=amount,
                currency=currency.upper(),
                status=AuthorizationStatus.CREATED,
                created_at=now,
                expires_at=now + self._hold_lifetime,
                client_secret=f"{ref}_secret_{secrets.token_hex(8)}",
                metadata=dict(metadata or {}),
            )
            self._holds[ref] = hold
            logger.info("Hold %s created for %s %s", ref, amount, hold.currency)
            return HoldResult(
                external_ref=ref,
                status=hold.status,
                expires_at=hold.expires_at,
                client_secret=hold.client_secret,
            )

        return self._run("create_hold", idempotency_key, params, apply)

    async def capture(self, external_ref: str, idempotency_key: str) -> OperationResult:
        self.calls["capture"] += 1
        await asyncio.sleep(0)
        params = ("capture", external_ref)

        def apply() -> OperationResult:
            hold = self._require(external_ref, idempotency_key)
            self._refresh(hold)
            if hold.status == AuthorizationStatus.CAPTURED:
                return OperationResult(external_ref=external_ref, status=hold.status)
            if hold.status != AuthorizationStatus.AUTHORIZED:
                raise ProcessorError(
                    f"Hold {external_ref} cannot be captured while {hold.status.value}",
                    idempotency_key,
                    retryable=False,
                )
            hold.status = AuthorizationStatus.CAPTURED
            logger.info("Hold %s captured", external_ref)
            return OperationResult(external_ref=external_ref, status=hold.status)

        return self._run("capture", idempotency_key, params, apply)

    async def release(self, external_ref: str, idempotency_key: str) -> OperationResult:
        self.calls["release"] += 1
        await asyncio.sleep(0)
        params = ("release", external_ref)

        def apply() -> OperationResult:
            hold = self._require(external_ref, idempotency_key)
            if hold.status == AuthorizationStatus.CAPTURED:
                raise ProcessorError(
                    f"Hold {external_ref} is already captured",
                    idempotency_key,
                    retryable=False,
                )
            hold.status = AuthorizationStatus.RELEASED
            logger.info("Hold %s released", external_ref)
            return OperationResult(external_ref=external_ref, status=hold.status)

        return self._run("release", idempotency_key, params, apply)

    async def get_authorization(self, external_ref: str) -> PaymentAuthorization:
        self.calls["get_authorization"] += 1
        await asyncio.sleep(0)
        hold = self._require(external_ref, "")
        self._refresh(hold)
        return self._snapshot(hold)

    # --- Internals ---

    def _run(self, operation: str, key: str, params: tuple, apply: Callable[[], Outcome]):
        cached = self._outcomes.get(key)
        if cached is not None:
            cached_params, outcome = cached
            if cached_params != params:
                raise ProcessorError(
                    f"Idempotency key {key!r} was already used with different parameters",
                    key,
                    retryable=False,
                )
            logger.debug("Replaying %s for idempotency key %s", operation, key)
            if isinstance(outcome, ProcessorError):
                raise outcome
            return outcome

        failure = self._failures.get(operation)
        if failure is not None and failure.remaining > 0:
            failure.remaining -= 1
            if failure.after_effect:
                self._record(key, params, apply)
            raise ProcessorError(
                f"Injected {operation} failure", key, retryable=failure.retryable
            )

        outcome = self._record(key, params, apply)
        if isinstance(outcome, ProcessorError):
            raise outcome
        return outcome

    def _record(self, key: str, params: tuple, apply: Callable[[], Outcome]) -> Outcome:
        try:
            outcome = apply()
        except ProcessorError as exc:
            if exc.retryable:
                raise
            outcome = exc
        self._outcomes[key] = (params, outcome)
        return outcome

    def _require(self, external_ref: str, idempotency_key: str) -> _Hold:
        hold = self._holds.get(external_ref)
        if hold is None:
            raise ProcessorError(
                f"No such payment hold: {external_ref}", idempotency_key, retryable=False
            )
        return hold

    def _refresh(self, hold: _Hold) -> None:
        if (
            hold.status in (AuthorizationStatus.CREATED, AuthorizationStatus.AUTHORIZED)
            and self._clock() >= hold.expires_at
        ):
            hold.status = AuthorizationStatus.EXPIRED
            logger.info("Hold %s expired", hold.external_ref)

    @staticmethod
    def _snapshot(hold: _Hold) -> PaymentAuthorization:
        return PaymentAuthorization(
            external_ref=hold.external_ref,
            amount=hold.amount,
            currency=hold.currency,
            status=hold.status,
            created_at=hold.created_at,
            expires_at=hold.expires_at,
        )
