# common/auth_tokens.py
from rest_framework import exceptions
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView

from tenants.models import Tenant, TenantUser


class TenantAwareTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    username + password (+ optional tenant_code).
    The issued tokens carry tenant_id, tenant_code and role claims, which is
    what TenantContextMiddleware reads back on every request.
    """

    def validate(self, attrs):
        data = super().validate(attrs)

        tenant_code = self.context["request"].data.get("tenant_code")
        memberships = TenantUser.objects.filter(user=self.user, is_active=True).select_related("tenant")
        if tenant_code:
            tenant = Tenant.objects.filter(code=tenant_code, is_active=True).first()
            if not tenant:
                raise exceptions.AuthenticationFailed("Invalid tenant")
            membership = memberships.filter(tenant=tenant).first()
            if not membership:
                raise exceptions.AuthenticationFailed("User is not a member of this tenant")
        else:
            membership = memberships.filter(tenant__is_active=True).first()
            if not membership:
                raise exceptions.AuthenticationFailed("User has no active tenant memberships")
            tenant = membership.tenant

        refresh = self.get_token(self.user)
        refresh["tenant_id"] = tenant.id
        refresh["tenant_code"] = tenant.code
        refresh["role"] = membership.role

        data["refresh"] = str(refresh)
        data["access"] = str(refresh.access_token)
        data["tenant"] = {"id": tenant.id, "code": tenant.code, "name": tenant.name}
        data["role"] = membership.role
        return data


class TenantAwareTokenObtainPairView(TokenObtainPairView):
    serializer_class = TenantAwareTokenObtainPairSerializer
