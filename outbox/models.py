# outbox/models.py
"""
Terminal-local storage for orders taken while the server is unreachable.
"""
from django.db import models
from django.utils import timezone


class OutboxStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SYNCED = "synced", "Synced"
    FAILED = "failed", "Failed"


class OutboxEntry(models.Model):
    """
    One order-creation request. temp_id doubles as the Idempotency-Key sent
    to the server, so a retried POST can never create a second order.
    """
    temp_id = models.CharField(max_length=64, unique=True)
    payload = models.JSONField(help_text="Order creation body as sent to POST /api/v1/orders/")

    status = models.CharField(max_length=16, choices=OutboxStatus.choices, default=OutboxStatus.PENDING, db_index=True)
    retry_count = models.PositiveIntegerField(default=0)
    # consecutive permanent (4xx) rejections; reset by any transient failure
    rejection_count = models.PositiveIntegerField(default=0)

    order_number = models.CharField(max_length=32, blank=True, default="")
    last_error = models.TextField(blank=True, default="")
    last_status_code = models.IntegerField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    synced_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="outbox_status_created_idx"),
        ]
        verbose_name_plural = "outbox entries"

    def __str__(self):
        return f"{self.temp_id} - {self.status}"


class OutboxSyncState(models.Model):
    """
    Single row (pk=1) holding the in-flight flag of the flush loop.
    """
    is_syncing = models.BooleanField(default=False)
    started_at = models.DateTimeField(null=True, blank=True)
    last_finished_at = models.DateTimeField(null=True, blank=True)
    last_report = models.JSONField(default=dict, blank=True)

    def __str__(self):
        return f"OutboxSyncState(syncing={self.is_syncing})"

    @classmethod
    def load(cls):
        state, _ = cls.objects.get_or_create(pk=1)
        return state


class CachedLoyaltyCard(models.Model):
    """
    Read-only mirror of cards recently seen online, shown when offline.
    Never used to change a balance.
    """
    card_id = models.BigIntegerField(unique=True, help_text="Card id on the server")
    card_number = models.CharField(max_length=24, unique=True)
    qr_token = models.CharField(max_length=64, db_index=True)
    phone_number = models.CharField(max_length=32, db_index=True)
    customer_name = models.CharField(max_length=160, blank=True, default="")
    stamps = models.PositiveIntegerField(default=0)
    free_cups_earned = models.PositiveIntegerField(default=0)
    free_cups_redeemed = models.PositiveIntegerField(default=0)
    available_free_drinks = models.PositiveIntegerField(default=0)
    points = models.PositiveIntegerField(default=0)
    tier = models.CharField(max_length=16, blank=True, default="")
    data = models.JSONField(default=dict, blank=True)
    refreshed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-refreshed_at"]

    def __str__(self):
        return f"{self.card_number} (cached {self.refreshed_at:%Y-%m-%d %H:%M})"
