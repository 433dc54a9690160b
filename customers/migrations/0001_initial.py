from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160)),
                ("phone_number", models.CharField(help_text="Normalized phone number. Unique per tenant.", max_length=32)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("marketing_opt_in", models.BooleanField(default=False)),
                ("total_spend", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("visits_count", models.IntegerField(default=0)),
                ("last_purchase_date", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="customers", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-last_purchase_date", "-id"],
                "indexes": [models.Index(fields=["tenant", "name"], name="customer_tenant_name_idx")],
                "unique_together": {("tenant", "phone_number")},
            },
        ),
    ]
