# menu/serializers.py
from rest_framework import serializers

from .models import CoffeeItem


class CoffeeItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = CoffeeItem
        fields = [
            "id", "code", "name", "name_en", "category", "description",
            "price", "image_url", "is_available",
        ]
        read_only_fields = ["id"]
