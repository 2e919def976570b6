from datetime import time, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from bookings.models import Booking
from bookings.pricing import compute_price
from coaches.models import Coach


SEED_PASSWORD = "Coachbook123!"
SUPERUSER_EMAIL = "admin@coachbook.test"
SUPERUSER_PASSWORD = "AdminCoachbook123!"
SEED_SESSION_PREFIX = "cs_test_seed_"


class Command(BaseCommand):
    help = "Populate the local development database with sample coaches, athletes and bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating coaches"))
            sprint_coach = self._ensure_coach(
                email="casey@coachbook.test",
                first_name="Casey",
                last_name="Sprint",
                hourly_rate=Decimal("100.00"),
                bio="Former collegiate sprinter focused on acceleration mechanics.",
                specialty=["Sprinting", "Speed"],
                location="Portland, OR",
            )
            swim_coach = self._ensure_coach(
                email="mira@coachbook.test",
                first_name="Mira",
                last_name="Lane",
                hourly_rate=Decimal("85.50"),
                bio="Open water and triathlon swim coach.",
                specialty=["Swimming", "Triathlon"],
                location="San Diego, CA",
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating athletes"))
            ava = self._ensure_user(
                email="ava@example.test",
                first_name="Ava",
                last_name="Athlete",
                display_name="Ava Athlete",
            )
            ben = self._ensure_user(
                email="ben@example.test",
                first_name="Ben",
                last_name="Runner",
                display_name="Ben Runner",
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Ensuring admin superuser"))
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            Booking.objects.filter(coach__in=[sprint_coach, swim_coach]).delete()
            today = timezone.localdate()
            self._create_booking(
                coach=sprint_coach,
                athlete=ava,
                session_date=today + timedelta(days=3),
                start_time=time(9, 0),
                duration_minutes=60,
                status=Booking.CONFIRMED,
                payment_status=Booking.PAYMENT_PAID,
                session_ref="ava1",
            )
            self._create_booking(
                coach=sprint_coach,
                athlete=ben,
                session_date=today + timedelta(days=5),
                start_time=time(17, 30),
                duration_minutes=90,
                status=Booking.PENDING,
                payment_status=Booking.PAYMENT_PENDING,
            )
            self._create_booking(
                coach=swim_coach,
                athlete=ava,
                session_date=today - timedelta(days=4),
                start_time=time(7, 0),
                duration_minutes=30,
                status=Booking.COMPLETED,
                payment_status=Booking.PAYMENT_PAID,
                session_ref="ava2",
            )
            self._create_booking(
                coach=swim_coach,
                athlete=ben,
                session_date=today + timedelta(days=1),
                start_time=time(23, 45),
                duration_minutes=30,
                session_type=Booking.GROUP,
                status=Booking.CANCELLED,
                payment_status=Booking.PAYMENT_REFUNDED,
                session_ref="ben1",
            )

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_EMAIL} password: {SUPERUSER_PASSWORD}"))

    def _ensure_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        display_name: str,
    ) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": display_name,
            },
        )
        if created:
            user.set_password(SEED_PASSWORD)
            user.save()
        else:
            fields_to_update = {}
            if user.first_name != first_name:
                fields_to_update["first_name"] = first_name
            if user.last_name != last_name:
                fields_to_update["last_name"] = last_name
            if user.display_name != display_name:
                fields_to_update["display_name"] = display_name
            if fields_to_update:
                for attr, value in fields_to_update.items():
                    setattr(user, attr, value)
                user.save(update_fields=list(fields_to_update.keys()))
            if not user.has_usable_password():
                user.set_password(SEED_PASSWORD)
                user.save(update_fields=["password"])
        return user

    def _ensure_coach(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        hourly_rate: Decimal,
        bio: str,
        specialty: list,
        location: str,
    ) -> Coach:
        display_name = f"{first_name} {last_name}"
        user = self._ensure_user(email, first_name, last_name, display_name)
        coach, created = Coach.objects.update_or_create(
            user=user,
            defaults={
                "display_name": display_name,
                "hourly_rate": hourly_rate,
                "bio": bio,
                "specialty": specialty,
                "location": location,
                "is_active": True,
            },
        )
        if created:
            self.stdout.write(self.style.NOTICE(f"Added coach {display_name} at {hourly_rate}/hr"))
        return coach

    def _create_booking(
        self,
        *,
        coach: Coach,
        athlete: User,
        session_date,
        start_time,
        duration_minutes: int,
        status: str,
        payment_status: str,
        session_type: str = Booking.ONE_ON_ONE,
        session_ref: str | None = None,
    ) -> Booking:
        return Booking.objects.create(
            coach=coach,
            athlete=athlete,
            session_date=session_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            session_type=session_type,
            price=compute_price(coach.hourly_rate, duration_minutes),
            status=status,
            payment_status=payment_status,
            stripe_session_id=f"{SEED_SESSION_PREFIX}{session_ref}" if session_ref else None,
            notes="Seeded for local development.",
        )

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        flag_updates = {}
        if not user.is_staff:
            flag_updates["is_staff"] = True
        if not user.is_superuser:
            flag_updates["is_superuser"] = True
        if flag_updates:
            for attr, value in flag_updates.items():
                setattr(user, attr, value)
            user.save(update_fields=list(flag_updates.keys()))
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
