from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class CoachQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def owned_by(self, user):
        if user is None or not user.is_authenticated:
            return self.none()
        return self.filter(user=user)


class Coach(models.Model):
    """Public coach profile; hourly_rate is the price input for new bookings."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="coach_profile",
    )
    display_name = models.CharField(max_length=120)
    bio = models.TextField(blank=True)
    specialty = models.JSONField(default=list, blank=True)
    hourly_rate = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0)],
    )
    experience_years = models.PositiveIntegerField(null=True, blank=True)
    location = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CoachQuerySet.as_manager()

    class Meta:
        ordering = ["display_name", "id"]

    def __str__(self):
        return self.display_name
