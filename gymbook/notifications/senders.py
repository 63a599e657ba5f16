"""
Notification transports.

LoggingSender is the development default; ResendEmailSender delivers
e-mail through the Resend HTTP API. Senders raise on failure and leave
retrying to the dispatcher.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from gymbook.config import NotificationConfig
from gymbook.notifications.schema import Notification
from gymbook.utils import mask_email

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class DeliveryError(Exception):
    """A sender could not deliver a notification."""


class NotificationSender(ABC):
    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver one notification. Raises DeliveryError on failure."""

    async def aclose(self) -> None:
        return None


class LoggingSender(NotificationSender):
    """Writes kind, recipient and subject to the log. Bodies are never logged."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s: %s",
            notification.kind.value,
            mask_email(notification.recipient),
            notification.subject,
        )


class ResendEmailSender(NotificationSender):
    """Sends notifications as plain-text e-mail via Resend."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Resend API key is required")
        self._from_address = from_address
        self._client = client or httpx.AsyncClient(timeout=15)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def send(self, notification: Notification) -> None:
        payload = {
            "from": self._from_address,
            "to": [notification.recipient],
            "subject": notification.subject,
            "text": notification.body,
        }
        headers = {**self._headers, "Idempotency-Key": notification.dedupe_key}
        try:
            resp = await self._client.post(RESEND_API_URL, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Resend rejected {notification.kind.value} "
                f"(status {exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Resend unreachable: {type(exc).__name__}") from exc
        logger.info(
            "Sent %s to %s", notification.kind.value, mask_email(notification.recipient)
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def build_sender(config: NotificationConfig) -> NotificationSender:
    """Construct the sender selected by NOTIFICATION_SENDER."""
    if config.sender == "resend":
        return ResendEmailSender(config.resend_api_key, config.from_address)
    return LoggingSender()
