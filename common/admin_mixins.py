# common/admin_mixins.py
from django.contrib import admin

from tenants.models import TenantUser


class TenantScopedAdmin(admin.ModelAdmin):
    """
    Staff only see rows of tenants they belong to. Superusers see all.
    """
    tenant_field = "tenant"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        tenant_ids = TenantUser.objects.filter(
            user=request.user, is_active=True
        ).values_list("tenant_id", flat=True)
        return qs.filter(**{f"{self.tenant_field}__in": list(tenant_ids)})


class LedgerReadOnlyAdmin(TenantScopedAdmin):
    """
    Append-only ledgers: visible in admin, never editable there.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
