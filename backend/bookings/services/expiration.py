"""
Sweep for checkouts the athlete never came back from.

Nothing else moves a booking out of ``pending/pending`` when the athlete closes
the payment page, so this runs periodically (``manage.py
expire_stale_bookings``). A session Stripe reports as paid is confirmed rather
than cancelled. An open session is expired at Stripe before its booking is
cancelled, so it cannot be paid afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from bookings.exceptions import BookingError, PaymentProcessorError
from bookings.models import Booking
from bookings.services import payments, store
from bookings.services.reconciliation import confirm_paid_booking

logger = logging.getLogger(__name__)


@dataclass
class ExpirationSummary:
    cutoff: datetime
    cancelled: List[str] = field(default_factory=list)
    confirmed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def examined(self) -> int:
        return len(self.cancelled) + len(self.confirmed) + len(self.failed)


def _close_session(booking: Booking) -> bool:
    """Make sure the booking's session can no longer take payment; True if it already did."""
    if not booking.stripe_session_id:
        return False
    session = payments.retrieve_checkout_session(booking.stripe_session_id)
    if session.is_paid:
        return True
    if not session.is_open:
        return False
    try:
        payments.expire_checkout_session(session.id)
    except PaymentProcessorError:
        # Stripe refuses to expire a session that completed in the meantime.
        if payments.retrieve_checkout_session(session.id).is_paid:
            return True
        raise
    logger.info("Expired checkout session %s for booking %s", session.id, booking.pk)
    return False


def _expire_one(booking: Booking, summary: ExpirationSummary) -> None:
    if _close_session(booking):
        confirm_paid_booking(booking)
        summary.confirmed.append(str(booking.pk))
        return
    store.update_booking(
        booking.pk,
        expected_status=Booking.PENDING,
        expected_payment_status=Booking.PAYMENT_PENDING,
        status=Booking.CANCELLED,
    )
    logger.info("Expired stale pending booking %s", booking.pk)
    summary.cancelled.append(str(booking.pk))


def expire_stale_bookings(*, older_than_minutes: Optional[int] = None, dry_run: bool = False) -> ExpirationSummary:
    if older_than_minutes is None:
        older_than_minutes = settings.BOOKING_PENDING_TTL_MINUTES
    cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
    summary = ExpirationSummary(cutoff=cutoff)

    for booking in list(store.stale_pending(cutoff)):
        if dry_run:
            summary.cancelled.append(str(booking.pk))
            continue
        try:
            _expire_one(booking, summary)
        except BookingError as exc:
            logger.error("Could not expire booking %s: %s", booking.pk, exc)
            summary.failed.append(str(booking.pk))

    return summary
