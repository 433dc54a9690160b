# outbox/admin.py
from django.contrib import admin, messages

from .models import CachedLoyaltyCard, OutboxEntry, OutboxStatus, OutboxSyncState
from .services import requeue


@admin.register(OutboxEntry)
class OutboxEntryAdmin(admin.ModelAdmin):
    list_display = ["temp_id", "status", "retry_count", "order_number", "last_status_code", "created_at", "last_attempt_at"]
    list_filter = ["status"]
    search_fields = ["temp_id", "order_number"]
    readonly_fields = [
        "temp_id", "payload", "status", "retry_count", "rejection_count", "order_number",
        "last_error", "last_status_code", "created_at", "last_attempt_at", "synced_at",
    ]
    actions = ["requeue_failed"]

    def has_add_permission(self, request):
        return False

    @admin.action(description="Requeue selected failed entries")
    def requeue_failed(self, request, queryset):
        count = 0
        for entry in queryset.filter(status=OutboxStatus.FAILED):
            requeue(entry.temp_id)
            count += 1
        self.message_user(request, f"Requeued {count} entr{'y' if count == 1 else 'ies'}.", messages.SUCCESS)


@admin.register(OutboxSyncState)
class OutboxSyncStateAdmin(admin.ModelAdmin):
    list_display = ["id", "is_syncing", "started_at", "last_finished_at"]
    readonly_fields = ["last_report"]


@admin.register(CachedLoyaltyCard)
class CachedLoyaltyCardAdmin(admin.ModelAdmin):
    list_display = ["card_number", "phone_number", "customer_name", "available_free_drinks", "refreshed_at"]
    search_fields = ["card_number", "phone_number", "customer_name"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
