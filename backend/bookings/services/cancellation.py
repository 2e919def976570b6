from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bookings.exceptions import AuthorizationError, BookingError, InvalidStateError, PaymentProcessorError
from bookings.models import Booking
from bookings.permissions import is_booking_participant
from bookings.pricing import format_price
from bookings.services import payments, store
from bookings.services.emails import notify_booking_cancelled
from bookings.services.payments import RefundResult

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    booking: Booking
    refund: Optional[RefundResult] = None

    @property
    def message(self) -> str:
        if self.refund is not None:
            return f"Booking cancelled and {format_price(self.refund.amount)} refunded"
        return "Booking cancelled successfully"


def _issue_refund(booking: Booking) -> Optional[RefundResult]:
    """Refund the full price of a paid booking; a processor failure is logged, not raised."""

    if booking.payment_status != Booking.PAYMENT_PAID or not booking.stripe_session_id:
        return None
    try:
        refund = payments.refund_checkout_session(
            session_id=booking.stripe_session_id,
            booking_id=booking.pk,
            amount=booking.price,
        )
    except PaymentProcessorError:
        logger.exception("Refund failed for booking %s; it stays cancelled and paid", booking.pk)
        return None
    logger.info("Refund %s issued for booking %s (%s)", refund.refund_id, booking.pk, refund.amount)
    return refund


def refund_cancelled_booking(booking: Booking) -> Optional[RefundResult]:
    """
    Refund a cancelled booking that is still marked paid, then mark it refunded.

    Only call this once the booking is cancelled: the money goes back after the
    booking can no longer be completed. If the refund goes through but cannot
    be recorded, the refund id is logged and the booking is left ``paid``.
    """

    refund = _issue_refund(booking)
    if refund is None:
        return None
    try:
        store.update_cancelled_payment(
            booking.pk,
            expected_payment_status=Booking.PAYMENT_PAID,
            payment_status=Booking.PAYMENT_REFUNDED,
        )
    except BookingError:
        logger.error(
            "Refund %s of %s for booking %s went through but was not recorded",
            refund.refund_id,
            refund.amount,
            booking.pk,
        )
    return refund


def _close_unpaid_session(booking: Booking) -> None:
    if booking.payment_status != Booking.PAYMENT_PENDING or not booking.stripe_session_id:
        return
    try:
        payments.expire_checkout_session(booking.stripe_session_id)
    except PaymentProcessorError:
        # Already completed or unreachable; a late payment is refunded when it is reconciled.
        logger.warning("Could not expire session %s for cancelled booking %s", booking.stripe_session_id, booking.pk)


def cancel_booking(booking_id, caller) -> CancellationResult:
    booking = store.get_booking(booking_id)

    if not is_booking_participant(booking, caller):
        raise AuthorizationError(
            f"user {getattr(caller, 'pk', None)} is neither athlete nor coach of booking {booking.pk}"
        )
    if booking.status == Booking.CANCELLED:
        raise InvalidStateError("Booking is already cancelled")
    if booking.status == Booking.COMPLETED:
        raise InvalidStateError("Cannot cancel a completed booking")

    # Claim the cancellation before any money moves; a concurrent completion
    # or cancellation makes this raise and nothing is refunded.
    booking = store.update_booking(
        booking.pk,
        expected_status=booking.status,
        expected_payment_status=booking.payment_status,
        status=Booking.CANCELLED,
    )
    logger.info("Booking %s cancelled by user %s", booking.pk, caller.pk)

    _close_unpaid_session(booking)
    refund = refund_cancelled_booking(booking)
    if refund is not None:
        booking = store.get_booking(booking.pk)

    notify_booking_cancelled(booking, refund_amount=refund.amount if refund is not None else None)
    return CancellationResult(booking=booking, refund=refund)
