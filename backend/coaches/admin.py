from django.contrib import admin

from .models import Coach


@admin.register(Coach)
class CoachAdmin(admin.ModelAdmin):
    list_display = ("display_name", "user", "hourly_rate", "location", "is_active")
    list_filter = ("is_active",)
    search_fields = ("display_name", "user__email", "location")
