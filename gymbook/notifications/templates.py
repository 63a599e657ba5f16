"""
Message construction for booking notifications.

Guest-facing wording says "not charged" in every message sent before the
booking is confirmed. No message ever contains the confirmation PIN;
the PIN is only handed out through the guest access channel.
"""

from typing import Optional

from gymbook.notifications.schema import Audience, Notification, NotificationKind
from gymbook.schemas.amenities_schema import describe_amenities
from gymbook.schemas.booking_schema import Booking

NOT_CHARGED = "You have not been charged."


def _stay_lines(booking: Booking) -> list[str]:
    snapshot = booking.offer_snapshot
    lines = [
        f"Reference: {booking.confirmation_reference}",
        f"Offer: {snapshot.name or snapshot.offer_id}"
        + (f" at {snapshot.gym_name}" if snapshot.gym_name else ""),
        f"Dates: {booking.start_date.isoformat()} to {booking.end_date.isoformat()} "
        f"({booking.duration_days} days)",
        f"Total: {booking.formatted_total} ({booking.price_label})",
    ]
    amenities = describe_amenities(snapshot.amenities)
    meals = describe_amenities(snapshot.amenities, group="meals")
    extras = [label for label in amenities if label not in meals]
    if extras:
        lines.append(f"Included: {', '.join(extras)}")
    if meals:
        lines.append(f"Meals: {', '.join(meals)}")
    return lines


def _guest(
    booking: Booking,
    kind: NotificationKind,
    subject: str,
    intro: list[str],
    discriminator: str = "",
) -> Notification:
    body = "\n".join([f"Hi {booking.guest.name},", "", *intro, "", *_stay_lines(booking)])
    return Notification(
        kind=kind,
        audience=Audience.GUEST,
        booking_id=booking.id,
        recipient=booking.guest.email,
        subject=f"{subject} [{booking.confirmation_reference}]",
        body=body,
        discriminator=discriminator,
    )


def request_received(booking: Booking) -> Notification:
    return _guest(
        booking,
        NotificationKind.REQUEST_RECEIVED,
        "Booking request received",
        [
            "Thanks for your request. The gym will review it shortly.",
            NOT_CHARGED,
        ],
    )


def host_new_request(booking: Booking) -> Optional[Notification]:
    """New-request message for the gym, or None when the offer has no host address."""
    host_email = booking.offer_snapshot.host_email
    if not host_email:
        return None
    lines = [
        f"New booking request from {booking.guest.name}.",
        "",
        *_stay_lines(booking),
    ]
    if booking.notes:
        lines += ["", f"Guest notes: {booking.notes}"]
    return Notification(
        kind=NotificationKind.HOST_NEW_REQUEST,
        audience=Audience.HOST,
        booking_id=booking.id,
        recipient=host_email,
        subject=f"New booking request [{booking.confirmation_reference}]",
        body="\n".join(lines),
    )


def request_accepted(booking: Booking) -> Notification:
    return _guest(
        booking,
        NotificationKind.REQUEST_ACCEPTED,
        "Your request was accepted",
        [
            "Good news: the gym accepted your request.",
            "Please complete the payment step to hold your spot. "
            "Your card is only authorized at this stage. " + NOT_CHARGED,
        ],
    )


def request_declined(booking: Booking, reason: Optional[str]) -> Notification:
    intro = ["Unfortunately the gym could not accept your booking."]
    if reason:
        intro.append(f"Reason: {reason}")
    intro.append(NOT_CHARGED)
    return _guest(booking, NotificationKind.REQUEST_DECLINED, "Booking request declined", intro)


def authorized(booking: Booking) -> Notification:
    return _guest(
        booking,
        NotificationKind.AUTHORIZED,
        "Payment authorized",
        [
            "Your card has been authorized for this booking.",
            "The amount is on hold and will only be charged once the booking "
            "is confirmed. " + NOT_CHARGED,
        ],
    )


def operator_detail(booking: Booking, operator_email: str) -> Notification:
    lines = [
        f"Booking {booking.id} is authorized and awaiting capture.",
        "",
        *_stay_lines(booking),
        f"Mode: {booking.booking_mode.value}",
        f"Guest: {booking.guest.name} <{booking.guest.email}> {booking.guest.phone}",
        f"Payment reference: {booking.authorization_ref}",
    ]
    if booking.notes:
        lines.append(f"Guest notes: {booking.notes}")
    return Notification(
        kind=NotificationKind.OPERATOR_DETAIL,
        audience=Audience.OPERATOR,
        booking_id=booking.id,
        recipient=operator_email,
        subject=f"Authorized booking {booking.confirmation_reference}",
        body="\n".join(lines),
    )


def charged(booking: Booking) -> Notification:
    return _guest(
        booking,
        NotificationKind.CHARGED,
        "Booking confirmed",
        [
            "Your booking is confirmed.",
            f"Your card has been charged {booking.formatted_total}.",
        ],
    )


def released(booking: Booking, reason: Optional[str]) -> Notification:
    intro = ["The hold on your card for this booking has been released."]
    if reason:
        intro.append(f"Reason: {reason}")
    intro.append(NOT_CHARGED)
    return _guest(booking, NotificationKind.RELEASED, "Booking not completed", intro)


def cancelled(booking: Booking, reason: Optional[str]) -> Notification:
    intro = ["Your confirmed booking has been cancelled."]
    if reason:
        intro.append(f"Reason: {reason}")
    intro.append("The gym will contact you about any refund.")
    return _guest(booking, NotificationKind.CANCELLED, "Booking cancelled", intro)


def access_code(booking: Booking, token: str, token_id: str) -> Notification:
    """Deliver a one-off access token to the guest's inbox.

    ``token_id`` is a non-secret identifier used for deduplication.
    """
    return _guest(
        booking,
        NotificationKind.ACCESS_CODE,
        "Your booking access code",
        [
            "Use this access code to view your booking PIN:",
            token,
            "If you did not ask for it, you can ignore this message.",
        ],
        discriminator=token_id,
    )
