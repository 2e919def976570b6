from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.utils import timezone

from bookings.exceptions import (
    InvalidStateError,
    NotFoundError,
    PaymentProcessorError,
    PersistenceError,
    ValidationError,
)
from bookings.models import Booking
from bookings.pricing import CENT, compute_price
from bookings.services import payments, store
from bookings.services.payments import CheckoutSession
from bookings.services.reconciliation import confirm_paid_booking
from coaches.models import Coach

logger = logging.getLogger(__name__)

VALID_DURATIONS = {value for value, _ in Booking.DURATIONS}
VALID_SESSION_TYPES = {value for value, _ in Booking.SESSION_TYPES}


@dataclass
class CheckoutDraft:
    coach_id: Optional[int]
    session_date: Optional[date]
    start_time: Optional[time]
    price: Optional[Decimal]
    duration_minutes: int = 60
    session_type: str = Booking.ONE_ON_ONE
    notes: str = ""
    coach_name: str = ""
    # Accepted for compatibility with clients that send it; always recomputed.
    end_time: Optional[time] = None


@dataclass
class CheckoutResult:
    booking: Booking
    session_id: str
    url: Optional[str]
    reused: bool = False


def _validate_draft(draft: CheckoutDraft) -> Coach:
    if not draft.coach_id or not draft.session_date or not draft.start_time or not draft.price:
        raise ValidationError("Missing required booking data.")
    if draft.duration_minutes not in VALID_DURATIONS:
        raise ValidationError("Session duration must be 30, 60 or 90 minutes.")
    if draft.session_type not in VALID_SESSION_TYPES:
        raise ValidationError("Unknown session type.")
    if draft.price <= 0:
        raise ValidationError("Price must be greater than zero.")

    coach = Coach.objects.active().select_related("user").filter(pk=draft.coach_id).first()
    if coach is None:
        raise ValidationError("Coach not found.")

    expected = compute_price(coach.hourly_rate, draft.duration_minutes)
    if Decimal(draft.price).quantize(CENT) != expected:
        raise ValidationError("Price does not match the coach's current rate.")
    return coach


def _attach_session(booking: Booking, session: CheckoutSession) -> None:
    """Persist the session reference; a failure here only costs later refund lookups."""
    try:
        store.update_booking(
            booking.pk,
            expected_status=Booking.PENDING,
            stripe_session_id=session.id,
        )
    except (PersistenceError, InvalidStateError, NotFoundError) as exc:
        logger.warning(
            "Could not store checkout session %s on booking %s: %s",
            session.id,
            booking.pk,
            exc,
        )
    booking.stripe_session_id = session.id


def _reusable_booking(idempotency_key: str, draft: CheckoutDraft) -> Optional[Booking]:
    window = timedelta(minutes=settings.BOOKING_IDEMPOTENCY_WINDOW_MINUTES)
    if window <= timedelta(0):
        return None
    # Same slot with a different length or type is a new order, not a retry.
    return store.find_recent_pending(
        idempotency_key,
        timezone.now() - window,
        duration_minutes=draft.duration_minutes,
        session_type=draft.session_type,
    )


def _existing_open_session(booking: Booking) -> Optional[CheckoutSession]:
    """
    Return the booking's Checkout session if the athlete can still pay on it.

    A session that was paid but never reconciled is confirmed here instead of
    being replaced, so the athlete is not charged twice for the same slot.
    """
    if not booking.stripe_session_id:
        return None
    try:
        session = payments.retrieve_checkout_session(booking.stripe_session_id)
    except PaymentProcessorError:
        logger.warning("Could not look up session %s for booking %s", booking.stripe_session_id, booking.pk)
        return None
    if session.is_paid:
        confirm_paid_booking(booking)
        raise InvalidStateError("This session has already been booked and paid.")
    return session if session.is_open else None


def start_checkout(draft: CheckoutDraft, *, athlete) -> CheckoutResult:
    """
    Create (or reuse) a pending booking and open a Checkout session for it.

    Validation happens before anything is written. A Stripe failure after the
    insert leaves an inert ``pending/pending`` booking without a session
    reference; it is never rolled back.
    """

    coach = _validate_draft(draft)
    idempotency_key = Booking.build_idempotency_key(
        athlete.pk,
        coach.pk,
        draft.session_date,
        draft.start_time,
    )

    booking = _reusable_booking(idempotency_key, draft)
    reused = booking is not None
    if reused:
        logger.info("Reusing pending booking %s for duplicate checkout", booking.pk)
        session = _existing_open_session(booking)
        if session is not None:
            return CheckoutResult(booking=booking, session_id=session.id, url=session.url, reused=True)
    else:
        booking = store.create_booking(
            coach=coach,
            athlete=athlete,
            session_date=draft.session_date,
            start_time=draft.start_time,
            duration_minutes=draft.duration_minutes,
            session_type=draft.session_type,
            price=compute_price(coach.hourly_rate, draft.duration_minutes),
            notes=draft.notes or "",
            status=Booking.PENDING,
            payment_status=Booking.PAYMENT_PENDING,
            idempotency_key=idempotency_key,
        )

    try:
        session = payments.create_checkout_session(
            booking=booking,
            coach_name=draft.coach_name or coach.display_name,
            customer_email=athlete.email,
            customer_id=payments.find_customer_id(athlete.email),
        )
    except PaymentProcessorError:
        logger.error("Checkout session creation failed; booking %s left pending", booking.pk)
        raise

    _attach_session(booking, session)
    logger.info("Opened checkout session %s for booking %s", session.id, booking.pk)
    return CheckoutResult(booking=booking, session_id=session.id, url=session.url, reused=reused)
