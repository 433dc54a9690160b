from django.contrib import admin

from common.admin_mixins import TenantScopedAdmin
from .models import Tenant, TenantUser


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "currency_code", "country_code", "is_active")
    search_fields = ("name", "code", "vat_number")
    list_filter = ("is_active", "country_code")
    prepopulated_fields = {"code": ("name",)}


@admin.register(TenantUser)
class TenantUserAdmin(TenantScopedAdmin):
    list_display = ("user", "tenant", "display_name", "role", "is_active", "created_at")
    list_filter = ("tenant", "role", "is_active")
    list_select_related = ("tenant", "user")
    search_fields = ("user__username", "user__email", "tenant__code", "display_name", "phone")
    autocomplete_fields = ("user",)
