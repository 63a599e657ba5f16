from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.notifications.schema import Audience, Notification, NotificationKind
from gymbook.notifications.senders import (
    DeliveryError,
    LoggingSender,
    NotificationSender,
    ResendEmailSender,
    build_sender,
)

__all__ = [
    "NotificationDispatcher",
    "Notification",
    "NotificationKind",
    "Audience",
    "NotificationSender",
    "LoggingSender",
    "ResendEmailSender",
    "DeliveryError",
    "build_sender",
]
