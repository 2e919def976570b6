from django.core.management.base import BaseCommand

from bookings.services.expiration import expire_stale_bookings


class Command(BaseCommand):
    help = "Cancel pending bookings whose checkout was abandoned."

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=None,
            help="Age in minutes after which a pending booking is stale (defaults to BOOKING_PENDING_TTL_MINUTES).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List stale bookings without changing them.",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        summary = expire_stale_bookings(
            older_than_minutes=options["older_than"],
            dry_run=dry_run,
        )

        self.stdout.write(self.style.MIGRATE_HEADING(f"Pending bookings created before {summary.cutoff:%Y-%m-%d %H:%M}"))
        if dry_run:
            for booking_id in summary.cancelled:
                self.stdout.write(f"  would cancel {booking_id}")
            self.stdout.write(self.style.NOTICE(f"Dry run: {len(summary.cancelled)} stale booking(s) found."))
            return

        for booking_id in summary.confirmed:
            self.stdout.write(self.style.NOTICE(f"Confirmed paid booking {booking_id}"))
        for booking_id in summary.failed:
            self.stdout.write(self.style.ERROR(f"Could not expire booking {booking_id}"))
        self.stdout.write(
            self.style.SUCCESS(
                f"Cancelled {len(summary.cancelled)}, confirmed {len(summary.confirmed)}, "
                f"failed {len(summary.failed)}."
            )
        )
