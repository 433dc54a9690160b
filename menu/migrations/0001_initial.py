from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CoffeeItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.SlugField()),
                ("name", models.CharField(max_length=200)),
                ("name_en", models.CharField(blank=True, default="", max_length=200)),
                ("category", models.CharField(
                    choices=[("hot", "Hot drinks"), ("cold", "Cold drinks"), ("specialty", "Specialty"), ("dessert", "Desserts")],
                    default="hot",
                    max_length=20,
                )),
                ("description", models.TextField(blank=True, default="")),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("image_url", models.URLField(blank=True, default="")),
                ("is_available", models.BooleanField(db_index=True, default=True)),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="coffee_items", to="tenants.tenant")),
            ],
            options={
                "ordering": ["category", "name"],
                "indexes": [models.Index(fields=["tenant", "category"], name="coffee_tenant_category_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="coffeeitem",
            constraint=models.UniqueConstraint(fields=("tenant", "code"), name="uniq_coffee_item_code_per_tenant"),
        ),
        migrations.AddConstraint(
            model_name="coffeeitem",
            constraint=models.CheckConstraint(condition=models.Q(("price__gte", 0)), name="coffee_item_price_non_negative"),
        ),
    ]
