from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("event", "reference", "order", "request_id", "created_at")
    search_fields = ("event", "reference", "request_id")
    list_filter = ("event",)
