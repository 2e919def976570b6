from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "session_date",
        "start_time",
        "coach",
        "athlete",
        "duration_minutes",
        "price",
        "status",
        "payment_status",
    )
    list_filter = ("status", "payment_status", "session_type")
    search_fields = ("coach__display_name", "athlete__email", "stripe_session_id")
    ordering = ("-session_date", "-start_time")
    readonly_fields = (
        "id",
        "coach",
        "athlete",
        "session_date",
        "start_time",
        "end_time",
        "duration_minutes",
        "price",
        "stripe_session_id",
        "idempotency_key",
        "created_at",
        "updated_at",
    )

    # Bookings are cancelled, never removed.
    def has_delete_permission(self, request, obj=None):
        return False
