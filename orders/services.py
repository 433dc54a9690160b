# orders/services.py
"""
Order creation and the order status state machine.

    pending -> payment_confirmed -> in_progress -> ready -> completed
    any non-terminal state -> cancelled

Forward skips are allowed (a counter sale may go straight to completed).
Entering `completed` credits the customer's loyalty card once, inside the
same transaction as the status change.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from customers.models import Customer
from customers.services import get_or_create_customer, update_customer_after_order
from discounts.services import discount_amount as compute_discount_amount
from discounts.services import record_usage, validate_code
from loyalty import services as loyalty
from loyalty.models import LoyaltyCard
from menu.models import CoffeeItem
from .exceptions import InvalidOrder, InvalidTransition
from .models import Order, OrderEvent, OrderItem, OrderStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
TOTAL_TOLERANCE = Decimal("0.01")

STATUS_FLOW = [
    OrderStatus.PENDING,
    OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY,
    OrderStatus.COMPLETED,
]
TERMINAL_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


def money(x) -> Decimal:
    return Decimal(str(x or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def payment_methods() -> list[str]:
    return list(getattr(settings, "ORDER_PAYMENT_METHODS", ["cash", "card"]))


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

def can_transition(current: str, target: str) -> bool:
    if current in TERMINAL_STATUSES or current == target:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    if current not in STATUS_FLOW or target not in STATUS_FLOW:
        return False
    return STATUS_FLOW.index(target) > STATUS_FLOW.index(current)


def allowed_next_statuses(current: str) -> list[str]:
    return [str(s) for s in OrderStatus.values if can_transition(current, s)]


def transition_status(order_id, target: str, user=None, reason: str = "") -> Order:
    """
    Move an order to `target`. Raises InvalidTransition for unknown states,
    backwards moves, moves out of completed/cancelled, or a cancellation
    without a reason.
    """
    if target not in OrderStatus.values:
        raise InvalidTransition("?", target, "unknown status")
    reason = (reason or "").strip()

    with transaction.atomic():
        order = Order.objects.select_for_update().select_related("tenant", "customer").get(pk=order_id)
        current = order.status

        if not can_transition(current, target):
            raise InvalidTransition(current, target)
        if target == OrderStatus.CANCELLED and not reason:
            raise InvalidTransition(current, target, "a cancellation reason is required")

        order.status = target
        update_fields = ["status", "updated_at"]
        now = timezone.now()
        if target == OrderStatus.CANCELLED:
            order.cancellation_reason = reason
            order.cancelled_at = now
            order.cancelled_by = user if getattr(user, "is_authenticated", False) else None
            update_fields += ["cancellation_reason", "cancelled_at", "cancelled_by"]
        elif target == OrderStatus.COMPLETED:
            order.completed_at = now
            update_fields.append("completed_at")
        order.save(update_fields=update_fields)

        accrual = None
        if target == OrderStatus.COMPLETED:
            accrual = _accrue_completed_order(order, user)

        OrderEvent.record(
            order=order,
            action="status_changed",
            user=user,
            from_status=current,
            to_status=target,
            note=reason,
            metadata={"accrual_id": accrual.transaction.pk} if accrual else {},
        )

    logger.info("Order %s: %s -> %s", order.order_number, current, target)
    return order


def _accrue_completed_order(order: Order, user=None):
    customer = order.customer
    if customer is None or not customer.phone_number:
        return None
    card, issued = loyalty.get_or_issue_card(customer, employee=user)
    if card is None:
        logger.info("Order %s completed without accrual: customer %s has no active card", order.order_number, customer.pk)
        return None
    if issued:
        logger.info("Auto-issued card %s on first completed order %s", card.card_number, order.order_number)
    employee = user if getattr(user, "is_authenticated", False) else None
    return loyalty.accrue(card.pk, order, employee=employee)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@dataclass
class PricedLine:
    coffee_item: CoffeeItem
    quantity: int
    notes: str = ""
    free_quantity: int = 0

    @property
    def item_id(self):
        return self.coffee_item.pk

    @property
    def unit_price(self) -> Decimal:
        return money(self.coffee_item.price)

    @property
    def gross(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * (self.quantity - self.free_quantity))


def price_lines(tenant, raw_items) -> list[PricedLine]:
    """
    Validate cart lines and attach server-side menu prices.
    """
    if not raw_items:
        raise InvalidOrder("Order must contain at least one item.")

    ids = []
    for raw in raw_items:
        item_id = raw.get("coffee_item_id") or raw.get("item_id") or raw.get("id")
        if not item_id:
            raise InvalidOrder("Every item needs a coffee_item_id.")
        ids.append(item_id)

    menu = {
        ci.pk: ci
        for ci in CoffeeItem.objects.filter(tenant=tenant, pk__in=ids)
    }

    lines = []
    for raw, item_id in zip(raw_items, ids):
        try:
            quantity = int(raw.get("quantity", 0))
        except (TypeError, ValueError):
            raise InvalidOrder(f"Invalid quantity for item {item_id}.")
        if quantity <= 0:
            raise InvalidOrder(f"Quantity for item {item_id} must be greater than 0.")
        try:
            coffee_item = menu[int(item_id)]
        except (KeyError, TypeError, ValueError):
            raise InvalidOrder(f"Coffee item {item_id} not found.")
        if not coffee_item.is_available:
            raise InvalidOrder(f"{coffee_item.name} is not available.")
        lines.append(PricedLine(coffee_item=coffee_item, quantity=quantity, notes=(raw.get("notes") or "")[:255]))
    return lines


def apply_free_drinks(lines: list[PricedLine], count: int) -> Decimal:
    """
    Mark the cheapest `count` units free. Returns the free-items discount.
    """
    allocation = loyalty.select_free_items(
        [{"item_id": idx, "unit_price": ln.unit_price, "quantity": ln.quantity} for idx, ln in enumerate(lines)],
        count,
    )
    if sum(allocation.values()) < count:
        raise InvalidOrder(f"Cart has fewer than {count} drink(s) to make free.")
    for idx, qty in allocation.items():
        lines[idx].free_quantity = qty
    return money(sum(ln.unit_price * ln.free_quantity for ln in lines))


def _resolve_customer(tenant, data) -> Customer | None:
    customer_id = data.get("customer_id")
    if customer_id:
        customer = Customer.objects.filter(tenant=tenant, pk=customer_id).first()
        if customer is None:
            raise InvalidOrder(f"Customer {customer_id} not found.")
        return customer
    phone = data.get("customer_phone")
    if phone:
        customer, _ = get_or_create_customer(tenant, phone, data.get("customer_name") or "")
        return customer
    return None


def _resolve_card(tenant, data, customer) -> LoyaltyCard | None:
    card_id = data.get("card_id")
    if card_id:
        card = LoyaltyCard.objects.filter(tenant=tenant, pk=card_id, is_active=True).first()
        if card is None:
            raise InvalidOrder(f"Loyalty card {card_id} not found or inactive.")
        return card
    if customer is not None:
        return loyalty.lookup_card(tenant, phone=customer.phone_number)
    return None


def find_replay(tenant, idempotency_key) -> Order | None:
    if not idempotency_key:
        return None
    return Order.objects.filter(tenant=tenant, idempotency_key=idempotency_key).first()


def create_order(tenant, data: dict, employee=None, idempotency_key: str | None = None) -> tuple[Order, bool]:
    """
    Create an order from a validated payload. Returns (order, created);
    a replay of a known idempotency key returns the original order with
    created=False and writes nothing.

    Free drinks are redeemed from the loyalty card inside the same
    transaction, so an InsufficientBalance leaves no order behind.
    """
    key = (idempotency_key or data.get("offline_id") or "").strip() or None

    existing = find_replay(tenant, key)
    if existing is not None:
        logger.info("Replay of %s resolved to order %s", key, existing.order_number)
        return existing, False

    payment_method = (data.get("payment_method") or "").strip()
    if payment_method not in payment_methods():
        raise InvalidOrder(f"Unsupported payment method '{payment_method}'.")

    used_free = int(data.get("used_free_drinks") or 0)
    if used_free < 0:
        raise InvalidOrder("used_free_drinks cannot be negative.")
    code = (data.get("discount_code") or "").strip()
    if used_free and code:
        raise InvalidOrder("Free drinks and a discount code cannot be combined.")

    lines = price_lines(tenant, data.get("items") or [])

    try:
        with transaction.atomic():
            customer = _resolve_customer(tenant, data)

            card = None
            free_discount = Decimal("0.00")
            if used_free:
                card = _resolve_card(tenant, data, customer)
                if card is None:
                    raise InvalidOrder("Free drinks need a loyalty card.")
                if customer is None:
                    customer = card.customer
                free_discount = apply_free_drinks(lines, used_free)

            subtotal = money(sum(ln.gross for ln in lines))
            dc = None
            discount = Decimal("0.00")
            if code:
                dc = validate_code(tenant, code)
                discount = compute_discount_amount(subtotal, dc.discount_percentage)

            total = money(max(Decimal("0.00"), subtotal - free_discount - discount))
            client_total = data.get("total_amount")
            if client_total not in (None, ""):
                if abs(money(client_total) - total) > TOTAL_TOLERANCE:
                    raise InvalidOrder(f"Total amount mismatch: expected {total}, got {money(client_total)}.")

            order = Order.objects.create(
                tenant=tenant,
                customer=customer,
                employee=employee if getattr(employee, "is_authenticated", False) else None,
                discount_code=dc,
                subtotal=subtotal,
                discount_amount=discount,
                free_items_discount=free_discount,
                total_amount=total,
                payment_method=payment_method,
                used_free_drinks=used_free,
                idempotency_key=key,
                order_type=data.get("order_type") or "regular",
                customer_notes=data.get("customer_notes") or "",
            )
            order.assign_order_number()
            order.save(update_fields=["order_number"])

            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    coffee_item=ln.coffee_item,
                    name=ln.coffee_item.name,
                    unit_price=ln.unit_price,
                    quantity=ln.quantity,
                    free_quantity=ln.free_quantity,
                    line_total=ln.line_total,
                    notes=ln.notes,
                )
                for ln in lines
            ])

            if used_free:
                loyalty.redeem(card.pk, order.pk, used_free, employee=order.employee)
            if dc is not None:
                record_usage(dc)

            OrderEvent.record(
                order=order,
                action="created",
                user=employee,
                to_status=order.status,
                metadata={"idempotency_key": key} if key else {},
            )
            update_customer_after_order(order)
    except IntegrityError:
        existing = find_replay(tenant, key)
        if existing is None:
            raise
        logger.info("Concurrent replay of %s resolved to order %s", key, existing.order_number)
        return existing, False

    logger.info(
        "Created order %s total=%s free_drinks=%s", order.order_number, order.total_amount, used_free
    )
    return order, True
