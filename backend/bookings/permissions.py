from rest_framework.permissions import BasePermission

from coaches.models import Coach


def is_booking_athlete(booking, user) -> bool:
    return user is not None and user.is_authenticated and booking.athlete_id == user.pk


def is_booking_coach(booking, user) -> bool:
    """True when ``user`` owns the coach profile the booking is assigned to."""
    return Coach.objects.owned_by(user).filter(pk=booking.coach_id).exists()


def is_booking_participant(booking, user) -> bool:
    return is_booking_athlete(booking, user) or is_booking_coach(booking, user)


class IsBookingParticipant(BasePermission):
    """Object-level access for the booking's athlete or its coach."""

    def has_object_permission(self, request, view, obj):
        return is_booking_participant(obj, request.user)
