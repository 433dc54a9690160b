# common/permissions.py
from rest_framework import permissions

from common.roles import MANAGER_ROLES
from common.tenancy import resolve_request_tenant
from tenants.models import TenantUser


def user_role_for_tenant(user, tenant):
    if not (user and tenant):
        return None
    return (
        TenantUser.objects.filter(user=user, tenant=tenant, is_active=True)
        .values_list("role", flat=True)
        .first()
    )


class IsTenantMember(permissions.BasePermission):
    """
    Authenticated user with an active membership in request.tenant.
    Superusers pass.
    """

    message = "User not a member of tenant."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        if user.is_superuser:
            return True
        tenant = resolve_request_tenant(request)
        if tenant is None:
            return False
        return TenantUser.objects.filter(user=user, tenant=tenant, is_active=True).exists()


class IsManagerOrAbove(permissions.BasePermission):
    """
    Owner / admin / manager of request.tenant.
    """

    message = "Manager role required."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        if user.is_superuser:
            return True
        role = user_role_for_tenant(user, resolve_request_tenant(request))
        return role in MANAGER_ROLES


class ManagerForUnsafeMethods(IsManagerOrAbove):
    """
    Any tenant member may read; writes need a manager role.
    """

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return IsTenantMember().has_permission(request, view)
        return super().has_permission(request, view)
