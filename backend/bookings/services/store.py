from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.db.models import QuerySet
from django.utils import timezone

from bookings.exceptions import InvalidStateError, NotFoundError, PersistenceError
from bookings.models import Booking

logger = logging.getLogger(__name__)

# Fixed at creation; never part of an update.
IMMUTABLE_FIELDS = frozenset(
    {
        "id",
        "coach",
        "coach_id",
        "athlete",
        "athlete_id",
        "session_date",
        "start_time",
        "end_time",
        "duration_minutes",
        "price",
        "idempotency_key",
        "created_at",
    }
)


def _base_queryset() -> QuerySet:
    return Booking.objects.select_related("coach", "coach__user", "athlete")


def _as_tuple(value) -> tuple:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


def create_booking(**fields) -> Booking:
    try:
        booking = Booking.objects.create(**fields)
    except DatabaseError as exc:
        logger.exception("Failed to insert booking for athlete %s", fields.get("athlete"))
        raise PersistenceError() from exc
    logger.info(
        "Created booking %s (%s/%s) for coach %s",
        booking.pk,
        booking.status,
        booking.payment_status,
        booking.coach_id,
    )
    return booking


def get_booking(booking_id, *, session_id: Optional[str] = None) -> Booking:
    """Fetch one booking, optionally requiring it to carry ``session_id``."""
    filters = {"pk": booking_id}
    if session_id is not None:
        filters["stripe_session_id"] = session_id
    try:
        return _base_queryset().get(**filters)
    except (Booking.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError()


def _state_error(booking: Booking) -> InvalidStateError:
    if booking.status == Booking.CANCELLED:
        return InvalidStateError("Booking is already cancelled.")
    if booking.status == Booking.COMPLETED:
        return InvalidStateError("Booking is already completed.")
    return InvalidStateError("Booking was changed by another request. Please refresh and try again.")


def update_booking(
    booking_id,
    *,
    expected_status=None,
    expected_payment_status=None,
    session_id: Optional[str] = None,
    **fields,
) -> Booking:
    """
    Apply a field-scoped update as a compare-and-set.

    The UPDATE only touches ``fields`` (plus ``updated_at``) and only matches the
    row while it is non-terminal and still in the expected status / payment
    status (and carries ``session_id`` when given). When nothing matched, the
    row is re-read to report ``NotFoundError`` or ``InvalidStateError``.
    """
    if not fields:
        raise ValueError("update_booking requires at least one field to update.")
    immutable = IMMUTABLE_FIELDS.intersection(fields)
    if immutable:
        raise ValueError(f"Booking fields cannot be updated: {', '.join(sorted(immutable))}")

    queryset = Booking.objects.filter(pk=booking_id).exclude(status__in=Booking.TERMINAL_STATUSES)
    if expected_status is not None:
        queryset = queryset.filter(status__in=_as_tuple(expected_status))
    if expected_payment_status is not None:
        queryset = queryset.filter(payment_status__in=_as_tuple(expected_payment_status))
    if session_id is not None:
        queryset = queryset.filter(stripe_session_id=session_id)

    return _apply_update(queryset, booking_id, session_id=session_id, fields=fields)


def update_cancelled_payment(
    booking_id,
    *,
    expected_payment_status,
    payment_status: str,
    session_id: Optional[str] = None,
) -> Booking:
    """
    Move the payment status of a cancelled booking, e.g. paid -> refunded.

    Cancelled rows are closed to ``update_booking``; this is the only write
    they accept, and it is a compare-and-set on the payment status alone.
    """
    queryset = Booking.objects.filter(
        pk=booking_id,
        status=Booking.CANCELLED,
        payment_status__in=_as_tuple(expected_payment_status),
    )
    if session_id is not None:
        queryset = queryset.filter(stripe_session_id=session_id)
    return _apply_update(queryset, booking_id, session_id=session_id, fields={"payment_status": payment_status})


def _apply_update(queryset: QuerySet, booking_id, *, session_id: Optional[str], fields: dict) -> Booking:
    fields["updated_at"] = timezone.now()
    try:
        updated = queryset.update(**fields)
    except DjangoValidationError:
        raise NotFoundError()
    except DatabaseError as exc:
        logger.exception("Failed to update booking %s with %s", booking_id, sorted(fields))
        raise PersistenceError() from exc

    if not updated:
        raise _state_error(get_booking(booking_id, session_id=session_id))
    return get_booking(booking_id)


def list_for_coach(coach_id) -> QuerySet:
    return _base_queryset().filter(coach_id=coach_id).order_by("session_date", "start_time")


def list_for_athlete(athlete_id) -> QuerySet:
    return _base_queryset().filter(athlete_id=athlete_id).order_by("session_date", "start_time")


def find_recent_pending(idempotency_key: str, since: datetime, **match) -> Optional[Booking]:
    """Newest ``pending/pending`` booking for the key since ``since``; ``match`` narrows by field."""
    return (
        _base_queryset()
        .filter(
            idempotency_key=idempotency_key,
            **match,
            status=Booking.PENDING,
            payment_status=Booking.PAYMENT_PENDING,
            created_at__gte=since,
        )
        .order_by("-created_at")
        .first()
    )


def stale_pending(cutoff: datetime) -> Iterable[Booking]:
    return (
        _base_queryset()
        .filter(
            status=Booking.PENDING,
            payment_status=Booking.PAYMENT_PENDING,
            created_at__lt=cutoff,
        )
        .order_by("created_at")
    )
