# loyalty/serializers.py

from rest_framework import serializers

from .models import LoyaltyCard, LoyaltyProgram, LoyaltyTransaction
from .services import STAMPS_PER_FREE_CUP, compute_available_free_drinks


class LoyaltyProgramSerializer(serializers.ModelSerializer):
    stamps_per_free_cup = serializers.SerializerMethodField()

    class Meta:
        model = LoyaltyProgram
        fields = [
            "tenant",
            "is_active",
            "earn_rate",
            "tiers",
            "stamps_per_free_cup",
            "updated_at",
        ]
        read_only_fields = ["tenant", "updated_at"]

    def get_stamps_per_free_cup(self, obj):
        return STAMPS_PER_FREE_CUP

    def validate_earn_rate(self, value):
        if value is not None and value <= 0:
            raise serializers.ValidationError("Earn rate must be positive.")
        return value

    def validate_tiers(self, value):
        if value in (None, {}):
            return value
        if not isinstance(value, dict):
            raise serializers.ValidationError("Tiers must be an object of tier -> spend threshold.")
        allowed = {"bronze", "silver", "gold", "platinum"}
        unknown = set(value) - allowed
        if unknown:
            raise serializers.ValidationError(f"Unknown tier(s): {', '.join(sorted(unknown))}")
        for name, threshold in value.items():
            try:
                if float(threshold) < 0:
                    raise ValueError
            except (TypeError, ValueError):
                raise serializers.ValidationError(f"Invalid threshold for {name}.")
        return value


class LoyaltyCardSerializer(serializers.ModelSerializer):
    available_free_drinks = serializers.SerializerMethodField()
    stamps_toward_next = serializers.SerializerMethodField()
    stamps_per_free_cup = serializers.SerializerMethodField()

    class Meta:
        model = LoyaltyCard
        fields = [
            "id",
            "card_number",
            "qr_token",
            "customer",
            "customer_name",
            "phone_number",
            "stamps",
            "free_cups_earned",
            "free_cups_redeemed",
            "available_free_drinks",
            "stamps_toward_next",
            "stamps_per_free_cup",
            "points",
            "total_spent",
            "tier",
            "status",
            "is_active",
            "last_used_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_available_free_drinks(self, obj):
        return compute_available_free_drinks(obj)

    def get_stamps_toward_next(self, obj):
        return obj.stamps % STAMPS_PER_FREE_CUP

    def get_stamps_per_free_cup(self, obj):
        return STAMPS_PER_FREE_CUP


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True, default=None)

    class Meta:
        model = LoyaltyTransaction
        fields = [
            "id",
            "type",
            "stamps_change",
            "points_change",
            "free_cups_change",
            "order",
            "order_number",
            "order_amount",
            "discount_amount",
            "description",
            "employee",
            "created_at",
        ]
        read_only_fields = fields


class CardRegisterSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField(required=False)
    phone_number = serializers.CharField(required=False, allow_blank=False)
    name = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if not attrs.get("customer_id") and not attrs.get("phone_number"):
            raise serializers.ValidationError("customer_id or phone_number is required.")
        return attrs


class CardStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=["inactive", "suspended"], default="inactive")


class CardAdjustSerializer(serializers.Serializer):
    stamps = serializers.IntegerField(required=False, default=0)
    points = serializers.IntegerField(required=False, default=0)
    reason = serializers.CharField(max_length=255)


class RedeemSerializer(serializers.Serializer):
    card_id = serializers.IntegerField()
    order_id = serializers.IntegerField()
    requested_free_drink_count = serializers.IntegerField()
