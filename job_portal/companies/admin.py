from django.contrib import admin

from job_portal.companies import models


@admin.register(models.Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "description", "created_at"]
    search_fields = ["name", "description"]
    list_filter = ["created_at", "updated_at"]
