from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User


@admin.register(User)
class CoachbookUserAdmin(UserAdmin):
    list_display = ("email", "first_name", "last_name", "display_name", "role", "is_staff")
    fieldsets = UserAdmin.fieldsets + (("Profile", {"fields": ("display_name",)}),)
