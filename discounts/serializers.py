# discounts/serializers.py
from rest_framework import serializers

from .models import DiscountCode


class DiscountCodeSerializer(serializers.ModelSerializer):
    employee_name = serializers.SerializerMethodField()

    class Meta:
        model = DiscountCode
        fields = [
            "id", "code", "discount_percentage", "reason", "is_active",
            "usage_count", "employee", "employee_name", "created_at",
        ]
        read_only_fields = ["id", "usage_count", "employee", "employee_name", "created_at"]

    def get_employee_name(self, obj):
        if not obj.employee_id:
            return None
        return obj.employee.get_full_name() or obj.employee.get_username()

    def validate_code(self, value):
        value = (value or "").strip().lower()
        if not value:
            raise serializers.ValidationError("Code is required.")
        tenant = self.context.get("tenant")
        qs = DiscountCode.objects.filter(tenant=tenant, code=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError("A discount code with this value already exists.")
        return value
