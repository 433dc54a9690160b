# customers/views.py

from django.db.models import Q
from rest_framework import generics

from common.permissions import IsTenantMember
from common.tenancy import resolve_request_tenant
from .models import Customer
from .serializers import CustomerSerializer, CustomerListSerializer


class CustomerListCreateView(generics.ListCreateAPIView):
    """
    GET /api/v1/customers/?q=
    POST /api/v1/customers/
    """

    permission_classes = [IsTenantMember]

    def get_serializer_class(self):
        if self.request.method == "GET":
            return CustomerListSerializer
        return CustomerSerializer

    def get_queryset(self):
        tenant = resolve_request_tenant(self.request)
        qs = Customer.objects.filter(tenant=tenant)

        q = self.request.query_params.get("q")
        if q:
            qs = qs.filter(
                Q(name__icontains=q)
                | Q(email__icontains=q)
                | Q(phone_number__icontains=q)
            )

        return qs.order_by("-last_purchase_date", "-id")


class CustomerDetailView(generics.RetrieveUpdateAPIView):
    """
    GET /api/v1/customers/<id>
    PATCH /api/v1/customers/<id>
    """

    permission_classes = [IsTenantMember]
    serializer_class = CustomerSerializer

    def get_queryset(self):
        return Customer.objects.filter(tenant=resolve_request_tenant(self.request))
