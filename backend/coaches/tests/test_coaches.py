from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser

from coaches.models import Coach

User = get_user_model()


@pytest.fixture
def coach_user(db):
    return User.objects.create_user(username="mira@example.com", email="mira@example.com", password="password123")


@pytest.mark.django_db
def test_active_excludes_retired_coaches(coach_user):
    active = Coach.objects.create(user=coach_user, display_name="Mira Lane", hourly_rate=Decimal("85.50"))
    retired_user = User.objects.create_user(username="old@example.com", email="old@example.com", password="x" * 8)
    Coach.objects.create(user=retired_user, display_name="Old Coach", hourly_rate=Decimal("50.00"), is_active=False)

    assert list(Coach.objects.active()) == [active]


@pytest.mark.django_db
def test_owned_by_matches_linked_user_only(coach_user):
    coach = Coach.objects.create(user=coach_user, display_name="Mira Lane", hourly_rate=Decimal("85.50"))
    other = User.objects.create_user(username="ava@example.com", email="ava@example.com", password="password123")

    assert list(Coach.objects.owned_by(coach_user)) == [coach]
    assert not Coach.objects.owned_by(other).exists()
    assert not Coach.objects.owned_by(AnonymousUser()).exists()
    assert not Coach.objects.owned_by(None).exists()
