# menu/views.py
from rest_framework import generics

from common.permissions import IsTenantMember
from common.tenancy import resolve_request_tenant
from .models import CoffeeItem
from .serializers import CoffeeItemSerializer


class CoffeeItemListView(generics.ListAPIView):
    """
    GET /api/v1/menu/items?category=&include_unavailable=1
    """

    permission_classes = [IsTenantMember]
    serializer_class = CoffeeItemSerializer

    def get_queryset(self):
        qs = CoffeeItem.objects.filter(tenant=resolve_request_tenant(self.request))
        if self.request.query_params.get("include_unavailable") not in ("1", "true"):
            qs = qs.filter(is_available=True)
        category = self.request.query_params.get("category")
        if category:
            qs = qs.filter(category=category)
        return qs
