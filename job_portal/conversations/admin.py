from django.contrib import admin

from job_portal.conversations import models


class MessageInline(admin.TabularInline):
    model = models.Message
    extra = 0
    fields = ["sender", "content", "created_at"]
    readonly_fields = ["sender", "content", "created_at"]
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(models.Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ["id", "seeker", "company", "created_at"]
    search_fields = ["seeker__username", "seeker__email", "company__name"]
    list_filter = ["created_at"]
    inlines = [MessageInline]


@admin.register(models.Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "sender", "content", "created_at"]
    search_fields = ["content", "sender__username"]
    list_filter = ["created_at"]

    def has_change_permission(self, request, obj=None):
        return False
