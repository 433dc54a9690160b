# loyalty/admin.py

from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from common.admin_mixins import LedgerReadOnlyAdmin, TenantScopedAdmin
from .models import LoyaltyCard, LoyaltyProgram, LoyaltyTransaction


@admin.register(LoyaltyProgram)
class LoyaltyProgramAdmin(TenantScopedAdmin):
    list_display = ["tenant", "is_active", "earn_rate", "updated_at"]
    list_editable = ["is_active", "earn_rate"]
    list_filter = ["is_active", "updated_at"]
    search_fields = ["tenant__name", "tenant__code"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("tenant")


@admin.register(LoyaltyCard)
class LoyaltyCardAdmin(TenantScopedAdmin):
    list_display = [
        "card_number",
        "customer_link",
        "tenant",
        "stamps",
        "free_cups_earned",
        "free_cups_redeemed",
        "points",
        "tier",
        "status",
    ]
    list_filter = ["tenant", "tier", "status", "is_active"]
    search_fields = ["card_number", "phone_number", "customer_name"]
    # counters move only through loyalty.services
    readonly_fields = [
        "card_number", "qr_token", "customer", "phone_number",
        "stamps", "free_cups_earned", "free_cups_redeemed", "points",
        "total_spent", "tier", "status", "is_active", "replaced_by",
        "last_used_at", "created_at", "updated_at",
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("tenant", "customer")

    def customer_link(self, obj):
        if not obj.pk:
            return "-"
        url = reverse("admin:customers_customer_change", args=[obj.customer_id])
        return format_html('<a href="{}">{}</a>', url, obj.customer_name or obj.phone_number)
    customer_link.short_description = "Customer"


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(LedgerReadOnlyAdmin):
    date_hierarchy = "created_at"
    list_display = [
        "created_at",
        "tenant",
        "card",
        "type",
        "stamps_change",
        "free_cups_change",
        "points_change",
        "order_link",
    ]
    list_filter = ["tenant", "type", "created_at"]
    search_fields = ["card__card_number", "card__phone_number", "order__order_number"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("tenant", "card", "order")

    def order_link(self, obj):
        if not obj.order_id:
            return "-"
        url = reverse("admin:orders_order_change", args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, obj.order.order_number or obj.order_id)
    order_link.short_description = "Order"
