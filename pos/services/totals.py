# pos/services/totals.py
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from discounts.services import discount_amount, validate_code
from loyalty.models import LoyaltyCard
from loyalty.services import compute_available_free_drinks, select_free_items

CENTS = Decimal("0.01")


def money(q: Decimal) -> Decimal:
    return Decimal(q).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class LineIn:
    item_id: int
    name: str
    qty: int
    unit_price: Decimal


@dataclass
class QuoteOut:
    subtotal: Decimal
    free_items_discount: Decimal
    discount_amount: Decimal
    total: Decimal
    available_free_drinks: int
    applied_free_drinks: int
    free_items: Dict[int, int]
    lines: List[Dict[str, Any]]
    card_number: Optional[str] = None
    discount_code: Optional[str] = None
    discount_percentage: Optional[int] = None
    notes: List[str] = field(default_factory=list)


def compute_quote(
    *,
    tenant,
    lines_in: List[LineIn],
    card: Optional[LoyaltyCard] = None,
    use_free_drinks: Optional[int] = None,
    discount_code: Optional[str] = None,
) -> QuoteOut:
    """
    Price a cart for the cashier screen. Read-only: nothing is redeemed here.

    use_free_drinks=None applies every free drink the card holds (capped by
    the number of units in the cart); 0 applies none. Free drinks and a
    discount code are mutually exclusive; the code wins only when no free
    drink is applied.
    """
    subtotal = money(sum((l.unit_price * l.qty for l in lines_in), Decimal("0")))
    available = compute_available_free_drinks(card)
    notes = []

    budget = available if use_free_drinks is None else min(max(0, int(use_free_drinks)), available)
    if use_free_drinks is not None and int(use_free_drinks) > available:
        notes.append(f"Only {available} free drink(s) available.")

    code = (discount_code or "").strip()
    if code and use_free_drinks is None:
        # an explicit code means the customer keeps their free cups for later
        budget = 0

    # list index as key so repeated items on separate lines stay separate
    allocation = select_free_items(
        [{"item_id": i, "unit_price": l.unit_price, "quantity": l.qty} for i, l in enumerate(lines_in)],
        budget,
    )
    applied = sum(allocation.values())

    free_discount = Decimal("0")
    lines_out = []
    for i, l in enumerate(lines_in):
        free_qty = allocation.get(i, 0)
        free_discount += l.unit_price * free_qty
        lines_out.append({
            "item_id": l.item_id,
            "name": l.name,
            "qty": l.qty,
            "unit_price": str(money(l.unit_price)),
            "free_qty": free_qty,
            "line_total": str(money(l.unit_price * (l.qty - free_qty))),
        })
    free_discount = money(free_discount)

    disc = Decimal("0.00")
    dc = None
    if code:
        if applied:
            notes.append("Discount code ignored: free drinks applied.")
        else:
            dc = validate_code(tenant, code)
            disc = discount_amount(subtotal, dc.discount_percentage)

    total = money(max(Decimal("0"), subtotal - free_discount - disc))
    free_items = {}
    for i, qty in allocation.items():
        item_id = lines_in[i].item_id
        free_items[item_id] = free_items.get(item_id, 0) + qty

    return QuoteOut(
        subtotal=subtotal,
        free_items_discount=free_discount,
        discount_amount=disc,
        total=total,
        available_free_drinks=available,
        applied_free_drinks=applied,
        free_items=free_items,
        lines=lines_out,
        card_number=card.card_number if card else None,
        discount_code=dc.code if dc else None,
        discount_percentage=dc.discount_percentage if dc else None,
        notes=notes,
    )


def serialize_quote(q: QuoteOut) -> Dict[str, Any]:
    return {
        "subtotal": str(q.subtotal),
        "free_items_discount": str(q.free_items_discount),
        "discount_amount": str(q.discount_amount),
        "total": str(q.total),
        "available_free_drinks": q.available_free_drinks,
        "applied_free_drinks": q.applied_free_drinks,
        "free_items": {str(k): v for k, v in q.free_items.items()},
        "lines": q.lines,
        "card_number": q.card_number,
        "discount_code": q.discount_code,
        "discount_percentage": q.discount_percentage,
        "notes": q.notes,
    }
