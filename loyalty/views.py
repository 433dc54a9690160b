# loyalty/views.py

import logging

from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsManagerOrAbove, IsTenantMember, ManagerForUnsafeMethods
from common.responses import domain_error_response
from common.tenancy import resolve_request_tenant
from customers.models import Customer
from customers.services import get_or_create_customer
from orders.models import Order
from .exceptions import CardInactive, LoyaltyError
from .models import LoyaltyCard, LoyaltyProgram, LoyaltyTransaction
from .serializers import (
    CardAdjustSerializer,
    CardRegisterSerializer,
    CardStatusSerializer,
    LoyaltyCardSerializer,
    LoyaltyProgramSerializer,
    LoyaltyTransactionSerializer,
    RedeemSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _tenant_or_400(request):
    tenant = resolve_request_tenant(request)
    if tenant is None:
        raise ValidationError({"detail": "Tenant context missing"})
    return tenant


def _card_for_request(request, pk):
    return get_object_or_404(LoyaltyCard, pk=pk, tenant=_tenant_or_400(request))


class LoyaltyProgramView(generics.RetrieveUpdateAPIView):
    """
    GET /api/v1/loyalty/program
    PATCH /api/v1/loyalty/program   (manager+)
    """

    permission_classes = [ManagerForUnsafeMethods]
    serializer_class = LoyaltyProgramSerializer
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        program, _ = LoyaltyProgram.objects.get_or_create(tenant=_tenant_or_400(self.request))
        return program


class CardLookupView(APIView):
    """
    GET /api/v1/loyalty/cards/lookup?phone=|card_number=|qr_token=
    """

    permission_classes = [IsTenantMember]

    def get(self, request):
        tenant = _tenant_or_400(request)
        qp = request.query_params
        card = services.lookup_card(
            tenant,
            phone=qp.get("phone"),
            card_number=qp.get("card_number"),
            qr_token=qp.get("qr_token"),
        )
        if card is None:
            return Response({"detail": "No active card found", "code": "card_not_found"}, status=404)
        return Response(LoyaltyCardSerializer(card).data)


class CardRegisterView(APIView):
    """
    POST /api/v1/loyalty/cards  {customer_id} or {phone_number, name}
    Returns the existing active card (200) or a new one (201).
    """

    permission_classes = [IsTenantMember]

    def post(self, request):
        tenant = _tenant_or_400(request)
        ser = CardRegisterSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        if data.get("customer_id"):
            customer = get_object_or_404(Customer, pk=data["customer_id"], tenant=tenant)
        else:
            customer, _ = get_or_create_customer(tenant, data["phone_number"], data.get("name", ""))

        card, created = services.get_or_issue_card(customer, employee=request.user)
        if card is None:
            return domain_error_response(
                CardInactive(f"Card for {customer.phone_number} is not active; reissue it instead.")
            )
        return Response(
            LoyaltyCardSerializer(card).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class CardDetailView(generics.RetrieveAPIView):
    """
    GET /api/v1/loyalty/cards/<id>
    """

    permission_classes = [IsTenantMember]
    serializer_class = LoyaltyCardSerializer

    def get_queryset(self):
        return LoyaltyCard.objects.filter(tenant=_tenant_or_400(self.request))


class CardTransactionsView(generics.ListAPIView):
    """
    GET /api/v1/loyalty/cards/<id>/transactions
    """

    permission_classes = [IsTenantMember]
    serializer_class = LoyaltyTransactionSerializer

    def get_queryset(self):
        card = _card_for_request(self.request, self.kwargs["pk"])
        return (
            LoyaltyTransaction.objects.filter(card=card)
            .select_related("order")
            .order_by("-created_at", "-id")
        )


class CardQRView(APIView):
    """
    GET /api/v1/loyalty/cards/<id>/qr
    """

    permission_classes = [IsTenantMember]

    def get(self, request, pk):
        card = _card_for_request(request, pk)
        return Response({
            "card_number": card.card_number,
            "qr_token": card.qr_token,
            "qr_png_data_url": services.card_qr_data_url(card),
        })


class CardDeactivateView(APIView):
    """
    POST /api/v1/loyalty/cards/<id>/deactivate  {status: inactive|suspended}
    """

    permission_classes = [IsManagerOrAbove]

    def post(self, request, pk):
        card = _card_for_request(request, pk)
        ser = CardStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            card = services.deactivate_card(card, ser.validated_data["status"], employee=request.user)
        except LoyaltyError as exc:
            return domain_error_response(exc)
        return Response(LoyaltyCardSerializer(card).data)


class CardReissueView(APIView):
    """
    POST /api/v1/loyalty/cards/<id>/reissue
    """

    permission_classes = [IsManagerOrAbove]

    def post(self, request, pk):
        card = _card_for_request(request, pk)
        try:
            new_card = services.reissue_card(card, employee=request.user)
        except LoyaltyError as exc:
            return domain_error_response(exc)
        return Response(LoyaltyCardSerializer(new_card).data, status=status.HTTP_201_CREATED)


class CardAdjustView(APIView):
    """
    POST /api/v1/loyalty/cards/<id>/adjust  {stamps, points, reason}
    """

    permission_classes = [IsManagerOrAbove]

    def post(self, request, pk):
        card = _card_for_request(request, pk)
        ser = CardAdjustSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            txn = services.adjust(card.pk, employee=request.user, **ser.validated_data)
        except LoyaltyError as exc:
            return domain_error_response(exc)
        card.refresh_from_db()
        return Response({
            "card": LoyaltyCardSerializer(card).data,
            "transaction": LoyaltyTransactionSerializer(txn).data,
        })


class RedeemView(APIView):
    """
    POST /api/v1/loyalty/redeem  {card_id, order_id, requested_free_drink_count}
    409 {"code": "insufficient_balance"} when the card cannot cover it.
    """

    permission_classes = [IsTenantMember]

    def post(self, request):
        tenant = _tenant_or_400(request)
        ser = RedeemSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        card = get_object_or_404(LoyaltyCard, pk=data["card_id"], tenant=tenant)
        order = get_object_or_404(Order, pk=data["order_id"], tenant=tenant)
        try:
            result = services.redeem(
                card.pk, order.pk, data["requested_free_drink_count"], employee=request.user
            )
        except LoyaltyError as exc:
            return domain_error_response(exc)
        return Response({
            "card": LoyaltyCardSerializer(result.card).data,
            "redeemed": result.redeemed,
            "remaining": result.remaining,
            "transaction_id": result.transaction.pk,
        })
