import logging

from bookings.exceptions import AuthorizationError, InvalidStateError
from bookings.models import Booking
from bookings.permissions import is_booking_coach
from bookings.services import store

logger = logging.getLogger(__name__)


def complete_booking(booking_id, caller) -> Booking:
    """Mark a confirmed session as delivered. Only the booking's coach may do this."""

    booking = store.get_booking(booking_id)
    if not is_booking_coach(booking, caller):
        raise AuthorizationError(
            f"user {getattr(caller, 'pk', None)} is not the coach of booking {booking.pk}"
        )
    if booking.status == Booking.PENDING:
        raise InvalidStateError("Only confirmed bookings can be marked completed.")

    booking = store.update_booking(
        booking.pk,
        expected_status=Booking.CONFIRMED,
        status=Booking.COMPLETED,
    )
    logger.info("Booking %s marked completed by coach %s", booking.pk, booking.coach_id)
    return booking
