# orders/serializers.py
from rest_framework import serializers

from .models import Order, OrderEvent, OrderItem, OrderStatus, OrderType
from .services import allowed_next_statuses, payment_methods


class OrderItemInSerializer(serializers.Serializer):
    coffee_item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInSerializer(many=True, allow_empty=False)
    payment_method = serializers.CharField(max_length=32)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    customer_id = serializers.IntegerField(required=False, allow_null=True)
    customer_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    customer_name = serializers.CharField(required=False, allow_blank=True, max_length=160)
    card_id = serializers.IntegerField(required=False, allow_null=True)
    used_free_drinks = serializers.IntegerField(required=False, min_value=0, default=0)
    discount_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    order_type = serializers.ChoiceField(choices=OrderType.choices, required=False, default=OrderType.REGULAR)
    customer_notes = serializers.CharField(required=False, allow_blank=True, default="")
    offline_id = serializers.CharField(required=False, allow_blank=True, max_length=64)

    def validate_payment_method(self, value):
        value = value.strip()
        if value not in payment_methods():
            raise serializers.ValidationError(f"Unsupported payment method '{value}'.")
        return value


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    cancellation_reason = serializers.CharField(required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "coffee_item", "name", "unit_price", "quantity", "free_quantity", "line_total", "notes"]


class OrderEventSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()

    class Meta:
        model = OrderEvent
        fields = ["id", "action", "from_status", "to_status", "note", "user", "user_name", "metadata", "created_at"]

    def get_user_name(self, obj):
        if not obj.user_id:
            return None
        return obj.user.get_full_name() or obj.user.get_username()


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "order_type", "total_amount",
            "payment_method", "used_free_drinks", "customer", "customer_name", "created_at",
        ]


class OrderDetailSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    events = OrderEventSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True, default=None)
    customer_phone = serializers.CharField(source="customer.phone_number", read_only=True, default=None)
    discount_code = serializers.CharField(source="discount_code.code", read_only=True, default=None)
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "order_type",
            "subtotal", "discount_amount", "free_items_discount", "total_amount",
            "payment_method", "used_free_drinks", "discount_code",
            "customer", "customer_name", "customer_phone", "employee",
            "customer_notes", "cancellation_reason", "cancelled_by", "cancelled_at",
            "completed_at", "idempotency_key", "created_at", "updated_at",
            "items", "events", "allowed_transitions",
        ]
        read_only_fields = fields

    def get_allowed_transitions(self, obj):
        return allowed_next_statuses(obj.status)
