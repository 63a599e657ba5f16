"""Notification message records."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, computed_field


class NotificationKind(str, Enum):
    REQUEST_RECEIVED = "request_received"
    HOST_NEW_REQUEST = "host_new_request"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_DECLINED = "request_declined"
    AUTHORIZED = "authorized"
    OPERATOR_DETAIL = "operator_detail"
    CHARGED = "charged"
    RELEASED = "released"
    CANCELLED = "cancelled"
    ACCESS_CODE = "access_code"


class Audience(str, Enum):
    GUEST = "guest"
    HOST = "host"
    OPERATOR = "operator"


class Notification(BaseModel):
    """One outbound message. ``body`` may contain guest data; never log it."""

    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    audience: Audience
    booking_id: str
    recipient: str
    subject: str
    body: str
    discriminator: str = ""

    @computed_field
    @property
    def dedupe_key(self) -> str:
        key = f"{self.booking_id}:{self.kind.value}"
        return f"{key}:{self.discriminator}" if self.discriminator else key
