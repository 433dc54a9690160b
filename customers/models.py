# customers/models.py

import re
from decimal import Decimal

from django.db import models
from django.utils import timezone

from tenants.models import Tenant


_PHONE_STRIP = re.compile(r"[\s\-().]")


def normalize_phone(raw) -> str:
    """
    '+966 50-123 4567' -> '+966501234567'. Empty input gives ''.
    """
    return _PHONE_STRIP.sub("", str(raw or "")).strip()


class Customer(models.Model):
    """
    Tenant-scoped customer profile, identified by phone number.
    Loyalty numbers live on the loyalty card (loyalty.LoyaltyCard).
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="customers",
    )
    name = models.CharField(max_length=160)
    phone_number = models.CharField(
        max_length=32,
        help_text="Normalized phone number. Unique per tenant.",
    )
    email = models.EmailField(blank=True, null=True)
    marketing_opt_in = models.BooleanField(default=False)

    # Stats (maintained only by backend business logic)
    total_spend = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    visits_count = models.IntegerField(default=0)
    last_purchase_date = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [("tenant", "phone_number")]
        indexes = [
            models.Index(fields=["tenant", "name"], name="customer_tenant_name_idx"),
        ]
        ordering = ["-last_purchase_date", "-id"]

    def __str__(self) -> str:
        return f"{self.name} <{self.phone_number}>"

    def save(self, *args, **kwargs):
        self.phone_number = normalize_phone(self.phone_number)
        super().save(*args, **kwargs)
