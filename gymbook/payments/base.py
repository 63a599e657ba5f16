"""Abstract base class for payment authorities.

Defines the two-phase hold / capture / release interface the lifecycle
coordinator drives. Any processor backend (Stripe, an in-memory fake,
another PSP) implements this ABC.

Every mutating call takes an idempotency key. Implementations must make
repeated calls with the same key return the same logical result; that
guarantee comes from the processor, not from local bookkeeping.
"""

from abc import ABC, abstractmethod

from gymbook.schemas.payment_schema import HoldResult, OperationResult, PaymentAuthorization


def idempotency_key(booking_id: str, operation: str) -> str:
    """Key for one processor operation on one booking."""
    return f"booking:{booking_id}:{operation}"


class PaymentAuthority(ABC):
    """Abstract two-phase payment processor.

    Subclasses must implement hold creation, capture, release, and
    authorization lookup.
    """

    @abstractmethod
    async def create_hold(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> HoldResult:
        """Reserve ``amount`` on the guest's card without charging it.

        Args:
            amount: Amount in minor currency units.
            currency: ISO currency code.
            idempotency_key: Stable key for this booking's hold.
            metadata: Opaque references stored with the hold.

        Returns:
            HoldResult with the processor reference, status, expiry and
            the client secret the guest's payment UI needs.

        Raises:
            ProcessorError: The processor failed or could not be reached.
        """

    @abstractmethod
    async def capture(self, external_ref: str, idempotency_key: str) -> OperationResult:
        """Turn an authorized hold into a charge.

        Raises:
            ProcessorError: The processor failed or could not be reached.
        """

    @abstractmethod
    async def release(self, external_ref: str, idempotency_key: str) -> OperationResult:
        """Cancel a hold without charging.

        Raises:
            ProcessorError: The processor failed or could not be reached.
        """

    @abstractmethod
    async def get_authorization(self, external_ref: str) -> PaymentAuthorization:
        """Return the processor's current view of a hold.

        Raises:
            ProcessorError: The processor failed, could not be reached,
                or does not know the reference.
        """
