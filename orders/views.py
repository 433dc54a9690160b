# orders/views.py
import logging
from datetime import datetime, time
from typing import Optional

from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import generics, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsTenantMember
from common.responses import domain_error_response
from common.tenancy import resolve_request_tenant
from loyalty.exceptions import LoyaltyError
from .exceptions import OrderError
from .models import Order
from .serializers import (
    OrderCreateSerializer,
    OrderDetailSerializer,
    OrderListSerializer,
    OrderStatusUpdateSerializer,
)
from .services import create_order, transition_status

logger = logging.getLogger(__name__)


def _tenant_or_400(request):
    tenant = resolve_request_tenant(request)
    if tenant is None:
        raise ValidationError({"detail": "Tenant context missing"})
    return tenant


def _to_aware_dt(val: Optional[str], end_of_day: bool) -> Optional[datetime]:
    """Parse ISO datetime or YYYY-MM-DD; make timezone-aware in current TZ."""
    if not val:
        return None
    dt = parse_datetime(val)
    if dt is None:
        d = parse_date(val)
        if not d:
            return None
        naive = datetime.combine(d, time.max if end_of_day else time.min)
        return timezone.make_aware(naive, timezone.get_current_timezone())
    return timezone.make_aware(dt, timezone.get_current_timezone()) if timezone.is_naive(dt) else dt


def _detail_queryset(tenant):
    return (
        Order.objects.filter(tenant=tenant)
        .select_related("customer", "discount_code")
        .prefetch_related("items", "events__user")
    )


class OrderListCreateView(APIView):
    """
    GET  /api/v1/orders/?status=&customer_id=&date_from=&date_to=&query=
    POST /api/v1/orders/   (Idempotency-Key header or body offline_id)
        201 on create, 200 when the key was already used.
    """

    permission_classes = [IsTenantMember]

    def get(self, request):
        tenant = _tenant_or_400(request)
        qs = Order.objects.filter(tenant=tenant).select_related("customer")

        qp = request.query_params
        status_filter = (qp.get("status") or "").strip()
        if status_filter:
            qs = qs.filter(status=status_filter)
        if qp.get("customer_id"):
            qs = qs.filter(customer_id=qp.get("customer_id"))
        df = _to_aware_dt(qp.get("date_from"), end_of_day=False)
        dt = _to_aware_dt(qp.get("date_to"), end_of_day=True)
        if df:
            qs = qs.filter(created_at__gte=df)
        if dt:
            qs = qs.filter(created_at__lte=dt)
        query = (qp.get("query") or "").strip()
        if query:
            qs = qs.filter(order_number__icontains=query)

        try:
            limit = min(int(qp.get("limit", 100)), 500)
        except ValueError:
            limit = 100
        return Response(OrderListSerializer(qs.order_by("-created_at", "-id")[:limit], many=True).data)

    def post(self, request):
        tenant = _tenant_or_400(request)
        ser = OrderCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        key = request.headers.get("Idempotency-Key")
        try:
            order, created = create_order(tenant, ser.validated_data, employee=request.user, idempotency_key=key)
        except (OrderError, LoyaltyError) as exc:
            return domain_error_response(exc)

        order = _detail_queryset(tenant).get(pk=order.pk)
        return Response(
            OrderDetailSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class OrderDetailView(generics.RetrieveAPIView):
    """
    GET /api/v1/orders/<id>
    """

    permission_classes = [IsTenantMember]
    serializer_class = OrderDetailSerializer

    def get_queryset(self):
        return _detail_queryset(_tenant_or_400(self.request))


class OrderByNumberView(generics.RetrieveAPIView):
    """
    GET /api/v1/orders/number/<order_number>
    """

    permission_classes = [IsTenantMember]
    serializer_class = OrderDetailSerializer
    lookup_field = "order_number"

    def get_queryset(self):
        return _detail_queryset(_tenant_or_400(self.request))


class OrderStatusView(APIView):
    """
    PATCH /api/v1/orders/<id>/status  {status, cancellation_reason?}
    """

    permission_classes = [IsTenantMember]

    def patch(self, request, pk):
        tenant = _tenant_or_400(request)
        order = get_object_or_404(Order, pk=pk, tenant=tenant)
        ser = OrderStatusUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            transition_status(
                order.pk,
                ser.validated_data["status"],
                user=request.user,
                reason=ser.validated_data.get("cancellation_reason", ""),
            )
        except (OrderError, LoyaltyError) as exc:
            return domain_error_response(exc)
        return Response(OrderDetailSerializer(_detail_queryset(tenant).get(pk=order.pk)).data)
