# discounts/models.py
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from common.models import TimeStampedModel


class DiscountCode(TimeStampedModel):
    """
    Percentage code handed out by an employee (compensation, staff friends,
    promotions). Codes are stored lower-case and matched case-insensitively.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="discount_codes")
    code = models.CharField(max_length=20)
    discount_percentage = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(100)],
    )
    reason = models.TextField()
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="issued_discount_codes",
    )
    is_active = models.BooleanField(default=True, db_index=True)
    usage_count = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="uniq_discount_code_per_tenant"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.code} ({self.discount_percentage}%)"

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().lower()
        super().save(*args, **kwargs)
