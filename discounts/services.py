# discounts/services.py
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import F

from orders.exceptions import InvalidDiscountCode
from .models import DiscountCode


def validate_code(tenant, code) -> DiscountCode:
    """
    Active code for the tenant, or InvalidDiscountCode.
    """
    normalized = (code or "").strip().lower()
    if not normalized:
        raise InvalidDiscountCode("Discount code is required")
    dc = DiscountCode.objects.filter(tenant=tenant, code=normalized).first()
    if dc is None:
        raise InvalidDiscountCode(f"Unknown discount code '{code}'")
    if not dc.is_active:
        raise InvalidDiscountCode(f"Discount code '{code}' is no longer active")
    return dc


def discount_amount(subtotal, percentage) -> Decimal:
    amount = Decimal(subtotal) * Decimal(percentage) / Decimal("100")
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def record_usage(dc: DiscountCode) -> None:
    DiscountCode.objects.filter(pk=dc.pk).update(usage_count=F("usage_count") + 1)
