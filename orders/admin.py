# orders/admin.py
from django.contrib import admin

from common.admin_mixins import LedgerReadOnlyAdmin, TenantScopedAdmin
from .models import Order, OrderEvent, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ["coffee_item", "name", "unit_price", "quantity", "free_quantity", "line_total", "notes"]

    def has_add_permission(self, request, obj=None):
        return False


class OrderEventInline(admin.TabularInline):
    model = OrderEvent
    extra = 0
    can_delete = False
    readonly_fields = ["action", "from_status", "to_status", "user", "note", "created_at"]
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(TenantScopedAdmin):
    date_hierarchy = "created_at"
    list_display = ["order_number", "tenant", "status", "total_amount", "payment_method", "used_free_drinks", "customer", "created_at"]
    list_filter = ["tenant", "status", "payment_method", "order_type"]
    search_fields = ["order_number", "customer__phone_number", "customer__name", "idempotency_key"]
    # status changes go through the API so accrual runs
    readonly_fields = [
        "order_number", "status", "subtotal", "discount_amount", "free_items_discount",
        "total_amount", "used_free_drinks", "idempotency_key", "cancelled_by",
        "cancelled_at", "completed_at", "created_at", "updated_at",
    ]
    inlines = [OrderItemInline, OrderEventInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(OrderEvent)
class OrderEventAdmin(LedgerReadOnlyAdmin):
    list_display = ["created_at", "tenant", "order", "action", "from_status", "to_status", "user"]
    list_filter = ["tenant", "action", "to_status"]
    search_fields = ["order__order_number"]
