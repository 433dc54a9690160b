# discounts/admin.py
from django.contrib import admin

from common.admin_mixins import TenantScopedAdmin
from .models import DiscountCode


@admin.register(DiscountCode)
class DiscountCodeAdmin(TenantScopedAdmin):
    list_display = ["code", "discount_percentage", "is_active", "usage_count", "employee", "tenant", "created_at"]
    list_filter = ["tenant", "is_active"]
    search_fields = ["code", "reason"]
    readonly_fields = ["usage_count", "created_at", "updated_at"]
