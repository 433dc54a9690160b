from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OutboxEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("temp_id", models.CharField(max_length=64, unique=True)),
                ("payload", models.JSONField(help_text="Order creation body as sent to POST /api/v1/orders/")),
                ("status", models.CharField(
                    choices=[("pending", "Pending"), ("processing", "Processing"), ("synced", "Synced"), ("failed", "Failed")],
                    db_index=True,
                    default="pending",
                    max_length=16,
                )),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("rejection_count", models.PositiveIntegerField(default=0)),
                ("order_number", models.CharField(blank=True, default="", max_length=32)),
                ("last_error", models.TextField(blank=True, default="")),
                ("last_status_code", models.IntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("synced_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["created_at", "id"],
                "verbose_name_plural": "outbox entries",
                "indexes": [models.Index(fields=["status", "created_at"], name="outbox_status_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="OutboxSyncState",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("is_syncing", models.BooleanField(default=False)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("last_finished_at", models.DateTimeField(blank=True, null=True)),
                ("last_report", models.JSONField(blank=True, default=dict)),
            ],
        ),
        migrations.CreateModel(
            name="CachedLoyaltyCard",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("card_id", models.BigIntegerField(help_text="Card id on the server", unique=True)),
                ("card_number", models.CharField(max_length=24, unique=True)),
                ("qr_token", models.CharField(db_index=True, max_length=64)),
                ("phone_number", models.CharField(db_index=True, max_length=32)),
                ("customer_name", models.CharField(blank=True, default="", max_length=160)),
                ("stamps", models.PositiveIntegerField(default=0)),
                ("free_cups_earned", models.PositiveIntegerField(default=0)),
                ("free_cups_redeemed", models.PositiveIntegerField(default=0)),
                ("available_free_drinks", models.PositiveIntegerField(default=0)),
                ("points", models.PositiveIntegerField(default=0)),
                ("tier", models.CharField(blank=True, default="", max_length=16)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("refreshed_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["-refreshed_at"],
            },
        ),
    ]
