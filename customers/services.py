# customers/services.py

from decimal import Decimal

from django.db.models import F
from django.utils import timezone

from .models import Customer, normalize_phone


def find_customer_by_phone(tenant, phone) -> Customer | None:
    phone = normalize_phone(phone)
    if not phone:
        return None
    return Customer.objects.filter(tenant=tenant, phone_number=phone).first()


def get_or_create_customer(tenant, phone, name: str = "") -> tuple[Customer, bool]:
    phone = normalize_phone(phone)
    if not phone:
        raise ValueError("phone number is required")
    return Customer.objects.get_or_create(
        tenant=tenant,
        phone_number=phone,
        defaults={"name": name or phone},
    )


def update_customer_after_order(order) -> None:
    """
    Called once when an order is created (cancelled orders are not undone;
    stats count attempts at the counter, the loyalty card counts completions).
    """
    customer = getattr(order, "customer", None)
    if not customer:
        return
    if customer.tenant_id != order.tenant_id:
        return

    amount = order.total_amount or Decimal("0.00")
    Customer.objects.filter(pk=customer.pk).update(
        total_spend=F("total_spend") + amount,
        visits_count=F("visits_count") + 1,
        last_purchase_date=order.created_at or timezone.now(),
    )
