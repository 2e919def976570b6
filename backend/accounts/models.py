from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Athletes and coaches alike; a coach is a user with a linked Coach profile."""

    ROLE_ATHLETE = "athlete"
    ROLE_COACH = "coach"

    display_name = models.CharField(max_length=120, blank=True)

    @property
    def greeting_name(self) -> str:
        return self.first_name or self.display_name or "Athlete"

    @property
    def coach(self):
        return getattr(self, "coach_profile", None)

    @property
    def role(self) -> str:
        return self.ROLE_COACH if self.coach is not None else self.ROLE_ATHLETE
