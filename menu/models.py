# menu/models.py
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel


class CoffeeCategory(models.TextChoices):
    HOT = "hot", "Hot drinks"
    COLD = "cold", "Cold drinks"
    SPECIALTY = "specialty", "Specialty"
    DESSERT = "dessert", "Desserts"


class CoffeeItem(TimeStampedModel):
    """
    A menu entry. Orders copy name and price at order time, so editing a
    price here never changes historical totals.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="coffee_items")
    code = models.SlugField()
    name = models.CharField(max_length=200)
    name_en = models.CharField(max_length=200, blank=True, default="")
    category = models.CharField(max_length=20, choices=CoffeeCategory.choices, default=CoffeeCategory.HOT)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    image_url = models.URLField(blank=True, default="")
    is_available = models.BooleanField(default=True, db_index=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="uniq_coffee_item_code_per_tenant"),
            models.CheckConstraint(condition=Q(price__gte=0), name="coffee_item_price_non_negative"),
        ]
        indexes = [
            models.Index(fields=["tenant", "category"], name="coffee_tenant_category_idx"),
        ]
        ordering = ["category", "name"]

    def __str__(self):
        return self.name
