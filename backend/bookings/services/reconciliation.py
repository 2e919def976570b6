from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bookings.exceptions import AuthorizationError, InvalidStateError
from bookings.models import Booking
from bookings.permissions import is_booking_athlete
from bookings.services import payments, store
from bookings.services.cancellation import refund_cancelled_booking
from bookings.services.emails import notify_late_payment_refunded, notify_payment_confirmed

logger = logging.getLogger(__name__)

SETTLED_STATUSES = (Booking.CONFIRMED, Booking.COMPLETED)


@dataclass
class ReconciliationResult:
    payment_status: str
    booking: Optional[Booking] = None
    newly_confirmed: bool = False

    @property
    def paid(self) -> bool:
        return self.payment_status == "paid"


def _already_settled(booking: Booking) -> bool:
    return booking.status in SETTLED_STATUSES and booking.payment_status == Booking.PAYMENT_PAID


def confirm_paid_booking(booking: Booking) -> tuple[Booking, bool]:
    """
    Move a booking whose session the processor reports as paid to ``confirmed/paid``.

    Returns ``(booking, newly_confirmed)``. Only the request that wins the
    compare-and-set sends the confirmation emails; a replay gets the stored
    booking back unchanged.
    """

    if _already_settled(booking):
        return booking, False

    try:
        updated = store.update_booking(
            booking.pk,
            expected_status=Booking.PENDING,
            expected_payment_status=Booking.PAYMENT_PENDING,
            session_id=booking.stripe_session_id,
            status=Booking.CONFIRMED,
            payment_status=Booking.PAYMENT_PAID,
        )
    except InvalidStateError:
        current = store.get_booking(booking.pk)
        if _already_settled(current):
            logger.info("Booking %s already confirmed; skipping notifications", current.pk)
            return current, False
        if current.status == Booking.CANCELLED and current.payment_status == Booking.PAYMENT_PENDING:
            _refund_late_payment(current, booking.stripe_session_id)
        logger.error(
            "Paid session %s could not confirm booking %s in state %s/%s",
            booking.stripe_session_id,
            current.pk,
            current.status,
            current.payment_status,
        )
        raise

    logger.info("Booking %s confirmed after payment on session %s", updated.pk, updated.stripe_session_id)
    notify_payment_confirmed(updated)
    return updated, True


def _refund_late_payment(booking: Booking, session_id: str) -> None:
    """
    Record and refund a session that was paid after its booking was cancelled.

    Always raises: the booking stays cancelled, and the athlete is told whether
    the money has already gone back.
    """

    booking = store.update_cancelled_payment(
        booking.pk,
        session_id=session_id,
        expected_payment_status=Booking.PAYMENT_PENDING,
        payment_status=Booking.PAYMENT_PAID,
    )
    logger.warning("Session %s was paid after booking %s was cancelled; refunding", session_id, booking.pk)

    refund = refund_cancelled_booking(booking)
    if refund is None:
        logger.error("Late payment on cancelled booking %s needs a manual refund", booking.pk)
        raise InvalidStateError(
            "Booking was cancelled before payment completed. Your payment will be refunded."
        )
    notify_late_payment_refunded(booking, refund_amount=refund.amount)
    raise InvalidStateError("Booking was cancelled before payment completed. Your payment has been refunded.")


def reconcile_payment(*, session_id: str, booking_id, caller) -> ReconciliationResult:
    """
    Check a Checkout session with Stripe and confirm the booking it paid for.

    The booking is selected by id *and* session id, so a stale or forged
    booking id cannot mark another booking paid. An unpaid session is reported
    back without touching the booking.
    """

    booking = store.get_booking(booking_id, session_id=session_id)
    if not is_booking_athlete(booking, caller):
        raise AuthorizationError(
            f"user {getattr(caller, 'pk', None)} tried to verify payment for booking {booking.pk}"
        )

    session = payments.retrieve_checkout_session(session_id)
    if not session.is_paid:
        logger.info(
            "Session %s for booking %s not paid yet (%s)",
            session_id,
            booking.pk,
            session.payment_status,
        )
        return ReconciliationResult(payment_status=session.payment_status)

    if booking.status == Booking.CANCELLED:
        if booking.payment_status == Booking.PAYMENT_PENDING:
            _refund_late_payment(booking, session_id)
        raise InvalidStateError("Booking is already cancelled.")

    booking, newly_confirmed = confirm_paid_booking(booking)
    return ReconciliationResult(
        payment_status=session.payment_status,
        booking=booking,
        newly_confirmed=newly_confirmed,
    )
