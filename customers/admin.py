# customers/admin.py

from django.contrib import admin

from common.admin_mixins import TenantScopedAdmin
from .models import Customer


@admin.register(Customer)
class CustomerAdmin(TenantScopedAdmin):
    list_display = [
        "id",
        "name",
        "phone_number",
        "email",
        "tenant",
        "total_spend",
        "visits_count",
        "last_purchase_date",
    ]
    list_filter = ["tenant", "marketing_opt_in", "created_at"]
    search_fields = ["name__icontains", "phone_number__icontains", "email__icontains"]
    readonly_fields = ["total_spend", "visits_count", "last_purchase_date", "created_at", "updated_at"]
