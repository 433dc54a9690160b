# orders/models.py

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from tenants.models import Tenant
from customers.models import Customer


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAYMENT_CONFIRMED = "payment_confirmed", "Payment confirmed"
    IN_PROGRESS = "in_progress", "In progress"
    READY = "ready", "Ready"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class OrderType(models.TextChoices):
    REGULAR = "regular", "Regular"
    DINE_IN = "dine_in", "Dine-in"
    TAKEAWAY = "takeaway", "Takeaway"
    DELIVERY = "delivery", "Delivery"


class Order(models.Model):
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="orders")
    order_number = models.CharField(max_length=32, blank=True, null=True, unique=True)
    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)
    order_type = models.CharField(max_length=16, choices=OrderType.choices, default=OrderType.REGULAR)

    customer = models.ForeignKey(
        Customer,
        null=True,
        blank=True,
        related_name="orders",
        on_delete=models.SET_NULL,
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="orders_taken",
        on_delete=models.SET_NULL,
    )
    discount_code = models.ForeignKey(
        "discounts.DiscountCode",
        null=True,
        blank=True,
        related_name="orders",
        on_delete=models.SET_NULL,
    )

    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    free_items_discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    payment_method = models.CharField(max_length=32)
    used_free_drinks = models.PositiveIntegerField(default=0)

    # Client-supplied replay key (Idempotency-Key header or offline temp id).
    idempotency_key = models.CharField(max_length=64, blank=True, null=True)

    customer_notes = models.TextField(blank=True, default="")
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="orders_cancelled",
        on_delete=models.SET_NULL,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="uniq_order_idempotency_key_per_tenant",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "status"], name="order_tenant_status_idx"),
        ]

    def __str__(self):
        return f"Order {self.order_number or self.pk} - {self.status} - {self.total_amount}"

    def assign_order_number(self):
        if self.order_number:
            return self.order_number
        code = (self.tenant.code or "SHOP").upper()
        self.order_number = f"ORD-{code}-{self.id:06d}"
        return self.order_number

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items.all())


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    coffee_item = models.ForeignKey("menu.CoffeeItem", on_delete=models.PROTECT, related_name="order_items")
    # snapshots taken at order time
    name = models.CharField(max_length=200)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField()
    free_quantity = models.PositiveIntegerField(default=0)
    line_total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    notes = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=Q(free_quantity__lte=models.F("quantity")), name="order_item_free_within_quantity"),
        ]

    def __str__(self):
        return f"OrderItem {self.order_id} - {self.name} x {self.quantity}"


class OrderEvent(models.Model):
    """
    Append-only history of an order: creation and every status change.
    """

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="order_events")
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="events")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="order_events"
    )
    action = models.CharField(max_length=32)
    from_status = models.CharField(max_length=20, blank=True, default="")
    to_status = models.CharField(max_length=20, blank=True, default="")
    note = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.action} {self.from_status}->{self.to_status} @ {self.created_at}"

    @classmethod
    def record(cls, *, order, action, user=None, from_status="", to_status="", note="", metadata=None):
        return cls.objects.create(
            tenant_id=order.tenant_id,
            order=order,
            action=action,
            user=user if (user is not None and getattr(user, "is_authenticated", False)) else None,
            from_status=from_status,
            to_status=to_status,
            note=note or "",
            metadata=metadata or {},
        )
