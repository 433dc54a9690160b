# discounts/views.py
from rest_framework import generics
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsTenantMember, ManagerForUnsafeMethods
from common.responses import domain_error_response
from common.tenancy import resolve_request_tenant
from orders.exceptions import InvalidDiscountCode
from .models import DiscountCode
from .serializers import DiscountCodeSerializer
from .services import validate_code


class DiscountCodeListCreateView(generics.ListCreateAPIView):
    """
    GET  /api/v1/discounts/codes?active=1
    POST /api/v1/discounts/codes   (manager+)
    """
    permission_classes = [ManagerForUnsafeMethods]
    serializer_class = DiscountCodeSerializer

    def get_queryset(self):
        qs = DiscountCode.objects.filter(tenant=resolve_request_tenant(self.request)).select_related("employee")
        if self.request.query_params.get("active") in ("1", "true"):
            qs = qs.filter(is_active=True)
        return qs

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["tenant"] = resolve_request_tenant(self.request)
        return ctx

    def perform_create(self, serializer):
        serializer.save(tenant=resolve_request_tenant(self.request), employee=self.request.user)


class DiscountCodeValidateView(APIView):
    """
    GET /api/v1/discounts/codes/validate?code=WELCOME10
    """
    permission_classes = [IsTenantMember]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        try:
            dc = validate_code(tenant, request.query_params.get("code"))
        except InvalidDiscountCode as exc:
            return domain_error_response(exc)
        return Response({
            "valid": True,
            "code": dc.code,
            "discount_percentage": dc.discount_percentage,
            "reason": dc.reason,
        })
