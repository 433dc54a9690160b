from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
        ("customers", "0001_initial"),
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LoyaltyProgram",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("is_active", models.BooleanField(default=True)),
                ("earn_rate", models.DecimalField(decimal_places=2, default=Decimal("1.00"), help_text="Currency spent per loyalty point.", max_digits=6)),
                ("tiers", models.JSONField(blank=True, help_text='Lifetime spend thresholds, e.g. {"bronze": 0, "silver": 500, "gold": 1500, "platinum": 3000}', null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("tenant", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="loyalty_program", to="tenants.tenant")),
            ],
        ),
        migrations.CreateModel(
            name="LoyaltyCard",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_name", models.CharField(blank=True, default="", max_length=160)),
                ("phone_number", models.CharField(max_length=32)),
                ("card_number", models.CharField(max_length=24, unique=True)),
                ("qr_token", models.CharField(max_length=64, unique=True)),
                ("stamps", models.PositiveIntegerField(default=0)),
                ("free_cups_earned", models.PositiveIntegerField(blank=True, default=0, null=True)),
                ("free_cups_redeemed", models.PositiveIntegerField(default=0)),
                ("points", models.PositiveIntegerField(default=0)),
                ("total_spent", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("tier", models.CharField(
                    choices=[("bronze", "Bronze"), ("silver", "Silver"), ("gold", "Gold"), ("platinum", "Platinum")],
                    default="bronze",
                    max_length=16,
                )),
                ("status", models.CharField(
                    choices=[("active", "Active"), ("inactive", "Inactive"), ("suspended", "Suspended")],
                    default="active",
                    max_length=16,
                )),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("last_used_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="loyalty_cards", to="customers.customer")),
                ("replaced_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="replaces", to="loyalty.loyaltycard")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="loyalty_cards", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["tenant", "phone_number"], name="loyalty_card_phone_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="loyaltycard",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    ("free_cups_redeemed__gte", 0),
                    models.Q(("free_cups_earned__isnull", True), ("free_cups_redeemed__lte", models.F("free_cups_earned")), _connector="OR"),
                ),
                name="loyalty_card_redeemed_within_earned",
            ),
        ),
        migrations.AddConstraint(
            model_name="loyaltycard",
            constraint=models.UniqueConstraint(
                condition=models.Q(("is_active", True)),
                fields=("tenant", "phone_number"),
                name="uniq_active_card_per_phone",
            ),
        ),
        migrations.CreateModel(
            name="LoyaltyTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(
                    choices=[("accrual", "Accrual"), ("redemption", "Redemption"), ("adjustment", "Adjustment")],
                    max_length=16,
                )),
                ("stamps_change", models.IntegerField(default=0)),
                ("points_change", models.IntegerField(default=0)),
                ("free_cups_change", models.IntegerField(default=0)),
                ("order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("discount_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("card", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="loyalty.loyaltycard")),
                ("employee", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="loyalty_transactions", to=settings.AUTH_USER_MODEL)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="loyalty_transactions", to="orders.order")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="loyalty_transactions", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["tenant", "type"], name="loyalty_txn_tenant_type_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="loyaltytransaction",
            constraint=models.UniqueConstraint(
                condition=models.Q(("type__in", ["accrual", "redemption"]), ("order__isnull", False)),
                fields=("order", "type"),
                name="uniq_loyalty_txn_per_order_type",
            ),
        ),
    ]
