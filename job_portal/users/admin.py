from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from job_portal.users.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = (
        *BaseUserAdmin.fieldsets,
        (_("Job portal"), {"fields": ("role", "company")}),
    )
    list_display = ["username", "email", "name", "role", "company", "is_staff"]
    search_fields = ["username", "email", "name"]
    list_filter = ["role", "is_staff", "is_active"]
