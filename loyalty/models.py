# loyalty/models.py

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from tenants.models import Tenant
from customers.models import Customer
from .exceptions import LoyaltyError


class LoyaltyProgram(models.Model):
    """
    Per-tenant loyalty settings. Stamps per free cup is global
    (LOYALTY_STAMPS_PER_FREE_CUP), not configured here.
    """

    tenant = models.OneToOneField(
        Tenant,
        on_delete=models.CASCADE,
        related_name="loyalty_program",
    )
    is_active = models.BooleanField(default=True)
    earn_rate = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("1.00"),
        help_text="Currency spent per loyalty point.",
    )
    tiers = models.JSONField(
        blank=True,
        null=True,
        help_text='Lifetime spend thresholds, e.g. {"bronze": 0, "silver": 500, "gold": 1500, "platinum": 3000}',
    )

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"LoyaltyProgram<{self.tenant_id}>"


class CardTier(models.TextChoices):
    BRONZE = "bronze", "Bronze"
    SILVER = "silver", "Silver"
    GOLD = "gold", "Gold"
    PLATINUM = "platinum", "Platinum"


class CardStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    SUSPENDED = "suspended", "Suspended"


class LoyaltyCard(models.Model):
    """
    Stamp card for one customer phone number. Counters are mutated only by
    loyalty.services; cards are deactivated, never deleted.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="loyalty_cards",
    )
    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="loyalty_cards",
    )
    customer_name = models.CharField(max_length=160, blank=True, default="")
    phone_number = models.CharField(max_length=32)

    card_number = models.CharField(max_length=24, unique=True)
    qr_token = models.CharField(max_length=64, unique=True)

    stamps = models.PositiveIntegerField(default=0)
    # Always stamps // LOYALTY_STAMPS_PER_FREE_CUP once written; NULL on legacy rows.
    free_cups_earned = models.PositiveIntegerField(default=0, null=True, blank=True)
    free_cups_redeemed = models.PositiveIntegerField(default=0)
    points = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tier = models.CharField(max_length=16, choices=CardTier.choices, default=CardTier.BRONZE)

    status = models.CharField(max_length=16, choices=CardStatus.choices, default=CardStatus.ACTIVE)
    is_active = models.BooleanField(default=True, db_index=True)
    replaced_by = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replaces",
    )
    last_used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(free_cups_redeemed__gte=0)
                & (Q(free_cups_earned__isnull=True) | Q(free_cups_redeemed__lte=F("free_cups_earned"))),
                name="loyalty_card_redeemed_within_earned",
            ),
            models.UniqueConstraint(
                fields=["tenant", "phone_number"],
                condition=Q(is_active=True),
                name="uniq_active_card_per_phone",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "phone_number"], name="loyalty_card_phone_idx"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.card_number} ({self.phone_number})"


class LoyaltyTransactionType(models.TextChoices):
    ACCRUAL = "accrual", "Accrual"
    REDEMPTION = "redemption", "Redemption"
    ADJUSTMENT = "adjustment", "Adjustment"


class LoyaltyTransaction(models.Model):
    """
    Write-once log of every card mutation. free_cups_change is the change in
    available free cups (accrual: newly earned, redemption: minus redeemed).
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="loyalty_transactions",
    )
    card = models.ForeignKey(
        LoyaltyCard,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )

    type = models.CharField(max_length=16, choices=LoyaltyTransactionType.choices)
    stamps_change = models.IntegerField(default=0)
    points_change = models.IntegerField(default=0)
    free_cups_change = models.IntegerField(default=0)
    order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    description = models.CharField(max_length=255, blank=True, default="")
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "type"],
                condition=Q(type__in=["accrual", "redemption"]) & Q(order__isnull=False),
                name="uniq_loyalty_txn_per_order_type",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "type"], name="loyalty_txn_tenant_type_idx"),
        ]

    def __str__(self):
        return f"{self.type} card={self.card_id} order={self.order_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LoyaltyError("Loyalty transactions are write-once.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LoyaltyError("Loyalty transactions cannot be deleted.")
