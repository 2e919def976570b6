import hashlib
import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from .pricing import compute_end_time


class Booking(models.Model):
    """One reserved training session between an athlete and a coach."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    STATUSES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (CANCELLED, "Cancelled"),
        (COMPLETED, "Completed"),
    ]
    TERMINAL_STATUSES = (CANCELLED, COMPLETED)

    PAYMENT_PENDING = "pending"
    PAYMENT_PAID = "paid"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_FAILED = "failed"
    PAYMENT_STATUSES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_REFUNDED, "Refunded"),
        (PAYMENT_FAILED, "Failed"),
    ]

    ONE_ON_ONE = "one_on_one"
    GROUP = "group"
    SESSION_TYPES = [
        (ONE_ON_ONE, "1-on-1"),
        (GROUP, "Group"),
    ]

    DURATIONS = [
        (30, "30 minutes"),
        (60, "60 minutes"),
        (90, "90 minutes"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    coach = models.ForeignKey("coaches.Coach", on_delete=models.PROTECT, related_name="bookings")
    athlete = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    session_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField(editable=False)
    duration_minutes = models.PositiveSmallIntegerField(choices=DURATIONS, default=60)
    session_type = models.CharField(max_length=20, choices=SESSION_TYPES, default=ONE_ON_ONE)
    price = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(0)])
    notes = models.TextField(blank=True, default="")
    status = models.CharField(max_length=12, choices=STATUSES, default=PENDING)
    payment_status = models.CharField(max_length=12, choices=PAYMENT_STATUSES, default=PAYMENT_PENDING)
    stripe_session_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    idempotency_key = models.CharField(max_length=64, db_index=True, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["session_date", "start_time", "created_at"]
        indexes = [
            models.Index(fields=["coach", "session_date"], name="booking_coach_date_idx"),
            models.Index(fields=["athlete", "session_date"], name="booking_athlete_date_idx"),
        ]

    def __str__(self):
        return f"{self.session_date} {self.start_time:%H:%M} ({self.duration_minutes}m) with {self.coach}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @staticmethod
    def build_idempotency_key(athlete_id, coach_id, session_date, start_time) -> str:
        raw = f"{athlete_id}|{coach_id}|{session_date.isoformat()}|{start_time:%H:%M}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def save(self, *args, **kwargs):
        # end_time and the idempotency key are derived once, at creation.
        if self._state.adding:
            self.end_time = compute_end_time(self.start_time, self.duration_minutes)
            if not self.idempotency_key:
                self.idempotency_key = self.build_idempotency_key(
                    self.athlete_id,
                    self.coach_id,
                    self.session_date,
                    self.start_time,
                )
        return super().save(*args, **kwargs)
