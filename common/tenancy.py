# common/tenancy.py
from django.shortcuts import get_object_or_404

from tenants.models import Tenant


def resolve_request_tenant(request):
    """
    Priority:
    1) request.tenant (middleware)
    2) request.auth payload: tenant_id
    """
    t = getattr(request, "tenant", None)
    if t:
        return t
    payload = getattr(request, "auth", None)
    tenant_id = None
    if isinstance(payload, dict):
        tenant_id = payload.get("tenant_id")
    elif payload is not None and hasattr(payload, "get"):
        tenant_id = payload.get("tenant_id")
    if tenant_id:
        return get_object_or_404(Tenant, id=tenant_id, is_active=True)
    return None
