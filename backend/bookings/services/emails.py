from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail

from bookings.models import Booking
from bookings.pricing import format_price, format_session_time

logger = logging.getLogger(__name__)

PAYMENT_CONFIRMED = "payment_confirmed"
COACH_NEW_BOOKING = "coach_new_booking"
BOOKING_CANCELLED = "booking_cancelled"
REFUND_PROCESSED = "refund_processed"
COACH_BOOKING_CANCELLED = "coach_booking_cancelled"

SUBJECTS = {
    PAYMENT_CONFIRMED: "Payment Confirmed - Your Training Session is Booked!",
    COACH_NEW_BOOKING: "New Training Session Booked!",
    BOOKING_CANCELLED: "Training Session Cancelled",
    REFUND_PROCESSED: "Refund Processed - Training Session Cancelled",
    COACH_BOOKING_CANCELLED: "Training Session Cancelled",
}


def _session_type_label(booking: Booking) -> str:
    return "1-on-1" if booking.session_type == Booking.ONE_ON_ONE else "Group"


def _athlete_name(booking: Booking) -> str:
    athlete = booking.athlete
    full_name = f"{athlete.first_name} {athlete.last_name}".strip()
    return full_name or athlete.display_name or "Athlete"


def _session_lines(booking: Booking, *, include_price: bool = True, athlete: bool = False) -> list[str]:
    lines = []
    if athlete:
        lines.append(f"Athlete: {_athlete_name(booking)}")
    else:
        lines.append(f"Coach: {booking.coach.display_name}")
    lines.extend(
        [
            f"Date: {booking.session_date:%A, %B %d, %Y}",
            f"Time: {format_session_time(booking.start_time)}",
            f"Duration: {booking.duration_minutes} minutes",
            f"Session Type: {_session_type_label(booking)}",
        ]
    )
    if include_price:
        label = "Earnings" if athlete else "Price"
        lines.append(f"{label}: {format_price(booking.price)}")
    return lines


def render_booking_email(
    kind: str,
    *,
    booking: Booking,
    recipient_name: str,
    refund_amount: Optional[Decimal] = None,
) -> tuple[str, str]:
    """Return ``(subject, body)`` for one notification kind."""

    if kind not in SUBJECTS:
        raise ValueError(f"Unknown booking email type: {kind}")

    greeting = [f"Hi {recipient_name},", ""]
    if kind == PAYMENT_CONFIRMED:
        intro = ["Your payment has been received and your training session is now confirmed."]
        details = _session_lines(booking)
        outro = ["If you need to make any changes, please contact us as soon as possible."]
    elif kind == COACH_NEW_BOOKING:
        intro = [f"{_athlete_name(booking)} has booked a training session with you."]
        details = _session_lines(booking, athlete=True)
        outro = ["Log in to your dashboard to view the booking details and manage your schedule."]
    elif kind == BOOKING_CANCELLED:
        intro = ["Your training session has been cancelled."]
        details = _session_lines(booking)
        outro = ["Please book another session when you're ready."]
    elif kind == REFUND_PROCESSED:
        amount = refund_amount if refund_amount is not None else booking.price
        intro = [
            f"Your training session has been cancelled and a refund of {format_price(amount)} "
            "has been processed."
        ]
        details = _session_lines(booking)
        outro = ["The refund should appear in your account within 5-10 business days, depending on your bank."]
    else:
        intro = [f"A training session with {_athlete_name(booking)} has been cancelled."]
        details = _session_lines(booking, include_price=False, athlete=True)
        outro = ["This time slot is now available for other bookings."]

    body = greeting + intro + [""] + [f" • {line}" for line in details] + [""] + outro
    return SUBJECTS[kind], "\n".join(body)


def send_booking_email(
    kind: str,
    *,
    booking: Booking,
    recipient_email: str,
    recipient_name: str,
    refund_amount: Optional[Decimal] = None,
) -> None:
    subject, body = render_booking_email(
        kind,
        booking=booking,
        recipient_name=recipient_name,
        refund_amount=refund_amount,
    )
    send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [recipient_email],
        fail_silently=False,
    )


def dispatch_booking_email(kind: str, *, booking: Booking, recipient_email: str | None, **kwargs) -> bool:
    """
    Fire-and-forget wrapper around ``send_booking_email``.

    A failed send is logged and reported as ``False``; it never propagates, so a
    booking transition that already happened is not undone by a mail outage.
    """

    if not recipient_email:
        logger.info("Skipping %s email for booking %s: no recipient address", kind, booking.pk)
        return False
    try:
        send_booking_email(kind, booking=booking, recipient_email=recipient_email, **kwargs)
    except Exception:
        logger.exception("Failed to send %s email for booking %s", kind, booking.pk)
        return False
    logger.info("Sent %s email for booking %s", kind, booking.pk)
    return True


def notify_payment_confirmed(booking: Booking) -> None:
    dispatch_booking_email(
        PAYMENT_CONFIRMED,
        booking=booking,
        recipient_email=booking.athlete.email,
        recipient_name=booking.athlete.greeting_name,
    )
    dispatch_booking_email(
        COACH_NEW_BOOKING,
        booking=booking,
        recipient_email=booking.coach.user.email,
        recipient_name=booking.coach.display_name,
    )


def notify_booking_cancelled(booking: Booking, *, refund_amount: Optional[Decimal] = None) -> None:
    if refund_amount is not None:
        dispatch_booking_email(
            REFUND_PROCESSED,
            booking=booking,
            recipient_email=booking.athlete.email,
            recipient_name=booking.athlete.greeting_name,
            refund_amount=refund_amount,
        )
    else:
        dispatch_booking_email(
            BOOKING_CANCELLED,
            booking=booking,
            recipient_email=booking.athlete.email,
            recipient_name=booking.athlete.greeting_name,
        )
    dispatch_booking_email(
        COACH_BOOKING_CANCELLED,
        booking=booking,
        recipient_email=booking.coach.user.email,
        recipient_name=booking.coach.display_name,
    )


def notify_late_payment_refunded(booking: Booking, *, refund_amount: Decimal) -> None:
    # The booking was already cancelled, so only the athlete hears about the refund.
    dispatch_booking_email(
        REFUND_PROCESSED,
        booking=booking,
        recipient_email=booking.athlete.email,
        recipient_name=booking.athlete.greeting_name,
        refund_amount=refund_amount,
    )
