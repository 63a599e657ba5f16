"""Payment authorization records returned by payment authority adapters."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AuthorizationStatus(str, Enum):
    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    RELEASED = "released"
    EXPIRED = "expired"


class PaymentAuthorization(BaseModel):
    """Processor-side hold on a guest's card, as last reported by the adapter."""

    model_config = ConfigDict(frozen=True)

    external_ref: str
    amount: int
    currency: str
    status: AuthorizationStatus
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        if self.status == AuthorizationStatus.EXPIRED:
            return True
        if self.status in (AuthorizationStatus.CREATED, AuthorizationStatus.AUTHORIZED):
            return now >= self.expires_at
        return False


class HoldResult(BaseModel):
    """Outcome of creating a hold."""

    model_config = ConfigDict(frozen=True)

    external_ref: str
    status: AuthorizationStatus
    expires_at: datetime
    client_secret: Optional[str] = None


class OperationResult(BaseModel):
    """Outcome of capture or release."""

    model_config = ConfigDict(frozen=True)

    external_ref: str
    status: AuthorizationStatus


class AuthorizationNotice(BaseModel):
    """A processor webhook telling us a guest finished authenticating a hold."""

    model_config = ConfigDict(frozen=True)

    booking_id: str
    external_ref: str
