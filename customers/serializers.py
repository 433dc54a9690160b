# customers/serializers.py

from rest_framework import serializers

from .models import Customer, normalize_phone


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id",
            "tenant",
            "name",
            "phone_number",
            "email",
            "marketing_opt_in",
            "total_spend",
            "visits_count",
            "last_purchase_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "tenant",
            "total_spend",
            "visits_count",
            "last_purchase_date",
            "created_at",
            "updated_at",
        ]

    def validate_phone_number(self, value):
        phone = normalize_phone(value)
        if not phone:
            raise serializers.ValidationError("Phone number is required.")
        tenant = getattr(self.context.get("request"), "tenant", None)
        qs = Customer.objects.filter(tenant=tenant, phone_number=phone)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if tenant is not None and qs.exists():
            raise serializers.ValidationError("A customer with this phone number already exists.")
        return phone

    def create(self, validated_data):
        request = self.context.get("request")
        tenant = getattr(request, "tenant", None)
        if tenant is None:
            raise serializers.ValidationError("Tenant context missing.")
        validated_data["tenant"] = tenant
        return super().create(validated_data)


class CustomerListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "phone_number",
            "email",
            "last_purchase_date",
            "visits_count",
            "total_spend",
        ]
