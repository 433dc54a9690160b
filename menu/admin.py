# menu/admin.py
from django.contrib import admin

from common.admin_mixins import TenantScopedAdmin
from .models import CoffeeItem


@admin.register(CoffeeItem)
class CoffeeItemAdmin(TenantScopedAdmin):
    list_display = ["name", "code", "category", "price", "is_available", "tenant"]
    list_editable = ["price", "is_available"]
    list_filter = ["tenant", "category", "is_available"]
    search_fields = ["name", "name_en", "code"]
