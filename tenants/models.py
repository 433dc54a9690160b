# tenants/models.py
from django.conf import settings
from django.db import models

from common.models import TimeStampedModel
from common.roles import TenantRole


class Tenant(TimeStampedModel):
    """
    Coffee-shop brand. Other tables FK to this (via 'tenant').
    """
    name = models.CharField(max_length=120)
    code = models.SlugField(unique=True)
    currency_code = models.CharField(max_length=3, default="SAR")
    country_code = models.CharField(max_length=2, blank=True, null=True)     # ISO alpha-2
    vat_number = models.CharField(max_length=64, blank=True, null=True)
    business_phone = models.CharField(max_length=32, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class TenantUser(models.Model):
    """
    Membership binding a Django user (employee) to a Tenant, with a role.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tenant_memberships")
    role = models.CharField(max_length=20, choices=TenantRole.choices, default=TenantRole.CASHIER)
    is_active = models.BooleanField(default=True)
    display_name = models.CharField(max_length=120, blank=True, null=True)
    phone = models.CharField(max_length=32, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("tenant", "user")]
        ordering = ["tenant_id", "id"]

    def __str__(self):
        return f"{self.user} @ {self.tenant} ({self.role})"
