# orders/admin.py
from django.contrib import admin

from .models import DispatchRecord, Order


class DispatchRecordInline(admin.TabularInline):
    model = DispatchRecord
    extra = 0
    can_delete = False
    readonly_fields = ("channel", "sent", "tries", "last_tried_at", "sent_at", "last_error", "claimed_until", "response")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("reference", "email", "amount", "currency", "status", "verified_at", "created_at")
    list_filter = ("status", "currency", "created_at")
    search_fields = ("reference", "email", "phone")
    readonly_fields = ("reference", "amount", "currency", "access_token", "token_expires_at", "created_at", "updated_at")
    inlines = [DispatchRecordInline]


@admin.register(DispatchRecord)
class DispatchRecordAdmin(admin.ModelAdmin):
    list_display = ("order", "channel", "sent", "tries", "last_tried_at", "sent_at")
    list_filter = ("channel", "sent")
    search_fields = ("order__reference",)
