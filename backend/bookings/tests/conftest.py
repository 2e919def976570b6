from datetime import date, time
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from bookings.models import Booking
from bookings.pricing import compute_price
from coaches.models import Coach

User = get_user_model()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def athlete(db):
    return User.objects.create_user(
        username="ava@example.com",
        email="ava@example.com",
        password="password123",
        first_name="Ava",
        last_name="Athlete",
    )


@pytest.fixture
def stranger(db):
    return User.objects.create_user(
        username="eve@example.com",
        email="eve@example.com",
        password="password123",
        first_name="Eve",
    )


@pytest.fixture
def coach(db):
    user = User.objects.create_user(
        username="casey@example.com",
        email="casey@example.com",
        password="password123",
        first_name="Casey",
        last_name="Sprint",
    )
    return Coach.objects.create(
        user=user,
        display_name="Casey Sprint",
        hourly_rate=Decimal("100.00"),
        specialty=["Sprinting"],
    )


@pytest.fixture
def make_booking(coach, athlete):
    def _make(**overrides):
        fields = {
            "coach": coach,
            "athlete": athlete,
            "session_date": date(2030, 5, 14),
            "start_time": time(9, 0),
            "duration_minutes": 60,
            "price": compute_price(coach.hourly_rate, overrides.get("duration_minutes", 60)),
            "status": Booking.PENDING,
            "payment_status": Booking.PAYMENT_PENDING,
            "stripe_session_id": "cs_test_abc123",
        }
        fields.update(overrides)
        return Booking.objects.create(**fields)

    return _make
