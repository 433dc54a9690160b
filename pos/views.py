# pos/views.py
import logging

from django.db import transaction
from rest_framework import serializers
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsTenantMember
from common.responses import domain_error_response
from common.tenancy import resolve_request_tenant
from loyalty.exceptions import LoyaltyError
from loyalty.models import LoyaltyCard
from loyalty.serializers import LoyaltyCardSerializer
from loyalty.services import compute_available_free_drinks, lookup_card, qr_data_url
from orders.exceptions import OrderError
from orders.models import OrderStatus
from orders.serializers import OrderDetailSerializer
from orders.services import create_order, find_replay, payment_methods, price_lines, transition_status
from .services.totals import LineIn, compute_quote, serialize_quote

logger = logging.getLogger(__name__)


class CartLineSerializer(serializers.Serializer):
    coffee_item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class QuoteRequestSerializer(serializers.Serializer):
    items = CartLineSerializer(many=True)
    card_id = serializers.IntegerField(required=False, allow_null=True)
    qr_token = serializers.CharField(required=False, allow_blank=True)
    card_number = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    use_free_drinks = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    discount_code = serializers.CharField(required=False, allow_blank=True)


class CheckoutRequestSerializer(QuoteRequestSerializer):
    payment_method = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    customer_name = serializers.CharField(required=False, allow_blank=True)
    customer_notes = serializers.CharField(required=False, allow_blank=True, default="")
    order_type = serializers.CharField(required=False, default="regular")
    complete = serializers.BooleanField(required=False, default=False)
    offline_id = serializers.CharField(required=False, allow_blank=True)

    def validate_payment_method(self, value):
        value = value.strip()
        if value not in payment_methods():
            raise serializers.ValidationError(f"Unsupported payment method '{value}'.")
        return value


def _card_from_payload(tenant, data):
    if data.get("card_id"):
        return LoyaltyCard.objects.filter(tenant=tenant, pk=data["card_id"], is_active=True).first()
    return lookup_card(
        tenant,
        phone=data.get("phone"),
        card_number=data.get("card_number"),
        qr_token=data.get("qr_token"),
    )


def _lines_in(tenant, items):
    priced = price_lines(tenant, items)
    return [
        LineIn(item_id=p.item_id, name=p.coffee_item.name, qty=p.quantity, unit_price=p.unit_price)
        for p in priced
    ]


class POSLookupCardView(APIView):
    """
    GET /api/v1/pos/lookup-card?qr_token=|card_number=|phone=
    Unknown card is a guest: {"card": null, "available_free_drinks": 0}.
    """
    permission_classes = [IsTenantMember]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        qp = request.query_params
        card = lookup_card(
            tenant,
            phone=qp.get("phone"),
            card_number=qp.get("card_number"),
            qr_token=qp.get("qr_token"),
        )
        return Response({
            "card": LoyaltyCardSerializer(card).data if card else None,
            "available_free_drinks": compute_available_free_drinks(card),
        })


class POSQuoteView(APIView):
    """
    POST /api/v1/pos/quote
    Body:
    {
      "items": [{"coffee_item_id": 1, "quantity": 2}, ...],
      "qr_token": "...",            (optional; or card_id / card_number / phone)
      "use_free_drinks": 1,         (optional; default = all available)
      "discount_code": "staff10"    (optional)
    }
    """
    permission_classes = [IsTenantMember]

    def post(self, request):
        tenant = resolve_request_tenant(request)
        ser = QuoteRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            lines_in = _lines_in(tenant, data["items"]) if data["items"] else []
            quote = compute_quote(
                tenant=tenant,
                lines_in=lines_in,
                card=_card_from_payload(tenant, data),
                use_free_drinks=data.get("use_free_drinks"),
                discount_code=data.get("discount_code"),
            )
        except OrderError as exc:
            return domain_error_response(exc)
        return Response({"ok": True, "quote": serialize_quote(quote)})


def _stored_totals(order):
    return {
        "subtotal": str(order.subtotal),
        "free_items_discount": str(order.free_items_discount),
        "discount_amount": str(order.discount_amount),
        "total": str(order.total_amount),
        "applied_free_drinks": order.used_free_drinks,
    }


def _checkout_response(order, totals, created):
    receipt = {
        "order_number": order.order_number,
        "quote": totals,
        "qr_png_data_url": qr_data_url(f"order:{order.order_number}"),
    }
    return Response(
        {"ok": True, "order": OrderDetailSerializer(order).data, "receipt": receipt},
        status=201 if created else 200,
    )


class POSCheckoutView(APIView):
    """
    POST /api/v1/pos/checkout
    Quote + create order in one step. Free drinks in the quote are redeemed
    with the order; "complete": true closes a counter sale right away.
    A known Idempotency-Key / offline_id returns the stored order untouched.
    """
    permission_classes = [IsTenantMember]

    def post(self, request):
        tenant = resolve_request_tenant(request)
        ser = CheckoutRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        key = (request.headers.get("Idempotency-Key") or data.get("offline_id") or "").strip() or None

        existing = find_replay(tenant, key)
        if existing is not None:
            logger.info("Checkout replay of %s resolved to order %s", key, existing.order_number)
            return _checkout_response(existing, _stored_totals(existing), created=False)

        try:
            with transaction.atomic():
                card = _card_from_payload(tenant, data)
                quote = compute_quote(
                    tenant=tenant,
                    lines_in=_lines_in(tenant, data["items"]),
                    card=card,
                    use_free_drinks=data.get("use_free_drinks"),
                    discount_code=data.get("discount_code"),
                )
                payload = {
                    "items": data["items"],
                    "payment_method": data["payment_method"],
                    "total_amount": data.get("total_amount"),
                    "used_free_drinks": quote.applied_free_drinks,
                    "discount_code": quote.discount_code or "",
                    "card_id": card.pk if (card and quote.applied_free_drinks) else None,
                    "customer_id": card.customer_id if card else None,
                    "customer_phone": data.get("phone") if not card else None,
                    "customer_name": data.get("customer_name") or "",
                    "customer_notes": data.get("customer_notes") or "",
                    "order_type": data.get("order_type") or "regular",
                }
                order, created = create_order(tenant, payload, employee=request.user, idempotency_key=key)
                if created and data.get("complete"):
                    order = transition_status(order.pk, OrderStatus.COMPLETED, user=request.user)
        except (OrderError, LoyaltyError) as exc:
            return domain_error_response(exc)

        totals = serialize_quote(quote) if created else _stored_totals(order)
        return _checkout_response(order, totals, created)
