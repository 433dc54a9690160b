# loyalty/services.py

import base64
import io
import logging
import secrets
from dataclasses import dataclass, field
from decimal import Decimal

import qrcode
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.utils import timezone

from customers.models import Customer, normalize_phone
from orders.models import Order, OrderStatus
from tenants.models import Tenant
from .exceptions import (
    CardNotFound,
    InsufficientBalance,
    InvalidAdjustment,
    InvalidRedemption,
    LoyaltyError,
)
from .models import (
    CardStatus,
    CardTier,
    LoyaltyCard,
    LoyaltyProgram,
    LoyaltyTransaction,
    LoyaltyTransactionType,
)

logger = logging.getLogger(__name__)

STAMPS_PER_FREE_CUP = getattr(settings, "LOYALTY_STAMPS_PER_FREE_CUP", 6)
DEFAULT_EARN_RATE = getattr(settings, "LOYALTY_DEFAULT_EARN_RATE", Decimal("1.00"))

# Lifetime spend needed for each tier when the program does not define its own.
DEFAULT_TIERS = {
    CardTier.BRONZE: Decimal("0"),
    CardTier.SILVER: Decimal("500"),
    CardTier.GOLD: Decimal("1500"),
    CardTier.PLATINUM: Decimal("3000"),
}


@dataclass
class AccrualResult:
    card: LoyaltyCard
    transaction: LoyaltyTransaction
    created: bool
    stamps_added: int = 0
    points_added: int = 0
    free_cups_added: int = 0


@dataclass
class RedemptionResult:
    card: LoyaltyCard
    transaction: LoyaltyTransaction
    redeemed: int
    remaining: int


@dataclass
class CounterReport:
    card: LoyaltyCard
    expected: dict
    mismatches: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.mismatches


def _get_program_for_tenant(tenant: Tenant) -> LoyaltyProgram | None:
    try:
        return tenant.loyalty_program
    except LoyaltyProgram.DoesNotExist:
        return None


def earned_free_cups(stamps: int) -> int:
    return int(stamps or 0) // STAMPS_PER_FREE_CUP


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def lookup_card(tenant, phone=None, card_number=None, qr_token=None) -> LoyaltyCard | None:
    """
    Active card by QR token, card number or phone (first one given wins).
    None means guest / new customer; callers treat it as a zero balance.
    """
    qs = LoyaltyCard.objects.select_related("customer").filter(
        tenant=tenant, is_active=True, status=CardStatus.ACTIVE
    )
    if qr_token:
        qs = qs.filter(qr_token=str(qr_token).strip())
    elif card_number:
        qs = qs.filter(card_number__iexact=str(card_number).strip())
    elif phone:
        phone = normalize_phone(phone)
        if not phone:
            return None
        qs = qs.filter(phone_number=phone)
    else:
        return None
    return qs.first()


def compute_available_free_drinks(card: LoyaltyCard | None) -> int:
    if card is None:
        return 0
    earned = card.free_cups_earned
    if earned is None:
        earned = earned_free_cups(card.stamps)
    return max(0, earned - (card.free_cups_redeemed or 0))


def _line_value(line, *names):
    for name in names:
        if isinstance(line, dict):
            if name in line:
                return line[name]
        elif hasattr(line, name):
            return getattr(line, name)
    raise KeyError(names[0])


def select_free_items(cart_items, available_free_drinks: int) -> dict:
    """
    Cheapest units go free first. Ties keep cart order. Returns
    {item_id: free_qty} in allocation order; never more than the budget.

    Cart lines may be dicts or objects exposing item_id (or id),
    unit_price (or price) and quantity.
    """
    budget = max(0, int(available_free_drinks or 0))
    if budget == 0:
        return {}

    lines = [
        (
            _line_value(line, "item_id", "coffee_item_id", "id"),
            Decimal(str(_line_value(line, "unit_price", "price"))),
            int(_line_value(line, "quantity", "qty")),
        )
        for line in cart_items
    ]
    # sorted() is stable, so equal prices keep their cart order
    ordered = sorted(lines, key=lambda ln: ln[1])

    allocation = {}
    for item_id, _price, qty in ordered:
        if budget <= 0:
            break
        take = min(qty, budget)
        if take <= 0:
            continue
        allocation[item_id] = allocation.get(item_id, 0) + take
        budget -= take
    return allocation


def evaluate_tier(total_spent, program: LoyaltyProgram | None = None) -> str:
    thresholds = DEFAULT_TIERS
    if program is not None and isinstance(program.tiers, dict) and program.tiers:
        thresholds = {
            name: Decimal(str(value))
            for name, value in program.tiers.items()
            if name in CardTier.values
        } or DEFAULT_TIERS

    spent = Decimal(str(total_spent or 0))
    tier = CardTier.BRONZE
    best = Decimal("-1")
    for name, threshold in thresholds.items():
        if spent >= threshold and threshold > best:
            tier, best = name, threshold
    return str(tier)


def qr_data_url(text: str) -> str:
    img = qrcode.make(text)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def card_qr_data_url(card: LoyaltyCard) -> str:
    return qr_data_url(card.qr_token)


# ---------------------------------------------------------------------------
# Card lifecycle
# ---------------------------------------------------------------------------

def _new_card_number() -> str:
    for _ in range(10):
        candidate = f"QC-{timezone.now():%y%m}-{secrets.token_hex(3).upper()}"
        if not LoyaltyCard.objects.filter(card_number=candidate).exists():
            return candidate
    raise LoyaltyError("Could not allocate a unique card number.")


def _new_qr_token() -> str:
    return secrets.token_urlsafe(24)


def issue_card(customer: Customer, employee=None) -> LoyaltyCard:
    if LoyaltyCard.objects.filter(
        tenant_id=customer.tenant_id, phone_number=customer.phone_number, is_active=True
    ).exists():
        raise LoyaltyError(f"Customer {customer.phone_number} already has an active card.")

    card = LoyaltyCard.objects.create(
        tenant_id=customer.tenant_id,
        customer=customer,
        customer_name=customer.name,
        phone_number=customer.phone_number,
        card_number=_new_card_number(),
        qr_token=_new_qr_token(),
    )
    logger.info("Issued loyalty card %s for customer %s", card.card_number, customer.pk)
    return card


def get_or_issue_card(customer: Customer, employee=None) -> tuple[LoyaltyCard | None, bool]:
    """
    Active card for the customer, issuing one on first contact. A customer
    whose card was deactivated or suspended gets (None, False): a new card
    is only ever issued explicitly (reissue_card or issue_card).
    """
    card = lookup_card(customer.tenant, phone=customer.phone_number)
    if card is not None:
        return card, False
    if LoyaltyCard.objects.filter(tenant_id=customer.tenant_id, phone_number=customer.phone_number).exists():
        logger.warning("Customer %s has no active card; not issuing a new one", customer.pk)
        return None, False
    try:
        with transaction.atomic():
            return issue_card(customer, employee=employee), True
    except IntegrityError:
        # lost the race against another issue for the same phone
        card = lookup_card(customer.tenant, phone=customer.phone_number)
        if card is None:
            raise
        return card, False


def deactivate_card(card: LoyaltyCard, status: str = CardStatus.INACTIVE, employee=None) -> LoyaltyCard:
    if status not in (CardStatus.INACTIVE, CardStatus.SUSPENDED):
        raise LoyaltyError(f"Unsupported card status '{status}'.")
    card.status = status
    card.is_active = False
    card.save(update_fields=["status", "is_active", "updated_at"])
    logger.info("Card %s set to %s by %s", card.card_number, status, getattr(employee, "pk", None))
    return card


@transaction.atomic
def reissue_card(card: LoyaltyCard, employee=None) -> LoyaltyCard:
    """
    Replace a lost card: the old one is deactivated and the new one starts
    with the same balances, recorded as a carry-over adjustment.
    """
    old = LoyaltyCard.objects.select_for_update().get(pk=card.pk)
    if not old.is_active:
        raise LoyaltyError("Only an active card can be reissued.")

    old.status = CardStatus.INACTIVE
    old.is_active = False
    old.save(update_fields=["status", "is_active", "updated_at"])

    earned = old.free_cups_earned if old.free_cups_earned is not None else earned_free_cups(old.stamps)
    new = LoyaltyCard.objects.create(
        tenant_id=old.tenant_id,
        customer_id=old.customer_id,
        customer_name=old.customer_name,
        phone_number=old.phone_number,
        card_number=_new_card_number(),
        qr_token=_new_qr_token(),
        stamps=old.stamps,
        free_cups_earned=earned,
        free_cups_redeemed=old.free_cups_redeemed,
        points=old.points,
        total_spent=old.total_spent,
        tier=old.tier,
    )
    old.replaced_by = new
    old.save(update_fields=["replaced_by"])

    LoyaltyTransaction.objects.create(
        tenant_id=new.tenant_id,
        card=new,
        type=LoyaltyTransactionType.ADJUSTMENT,
        stamps_change=new.stamps,
        points_change=new.points,
        free_cups_change=compute_available_free_drinks(new),
        order_amount=new.total_spent,
        description=f"Carried over from {old.card_number}",
        employee=employee,
    )
    logger.info("Reissued card %s as %s", old.card_number, new.card_number)
    return new


# ---------------------------------------------------------------------------
# Ledger mutations
# ---------------------------------------------------------------------------

def accrue(card_id, order: Order, employee=None) -> AccrualResult:
    """
    Credit a completed order to the card: one stamp per unit, points by the
    program's earn rate, lifetime spend and tier. Runs once per order; a
    repeated call returns the original transaction with created=False.
    """
    with transaction.atomic():
        card = LoyaltyCard.objects.select_for_update().get(pk=card_id)

        existing = LoyaltyTransaction.objects.filter(
            order_id=order.pk, type=LoyaltyTransactionType.ACCRUAL
        ).first()
        if existing is not None:
            return AccrualResult(card=card, transaction=existing, created=False)

        if order.status != OrderStatus.COMPLETED:
            raise LoyaltyError("Only completed orders earn stamps.")
        if order.tenant_id != card.tenant_id:
            raise LoyaltyError("Card and order belong to different tenants.")

        stamps_added = sum(item.quantity for item in order.items.all())
        amount = order.total_amount or Decimal("0.00")

        program = _get_program_for_tenant(card.tenant)
        if program is None:
            earn_rate = DEFAULT_EARN_RATE
        elif program.is_active:
            earn_rate = program.earn_rate or DEFAULT_EARN_RATE
        else:
            earn_rate = None
        points_added = int(amount / earn_rate) if earn_rate and amount > 0 else 0

        earned_before = card.free_cups_earned
        if earned_before is None:
            earned_before = earned_free_cups(card.stamps)

        card.stamps += stamps_added
        card.free_cups_earned = earned_free_cups(card.stamps)
        card.points += points_added
        card.total_spent = (card.total_spent or Decimal("0.00")) + amount
        card.tier = evaluate_tier(card.total_spent, program)
        card.last_used_at = timezone.now()

        try:
            with transaction.atomic():
                card.save(update_fields=[
                    "stamps", "free_cups_earned", "points", "total_spent",
                    "tier", "last_used_at", "updated_at",
                ])
                txn = LoyaltyTransaction.objects.create(
                    tenant_id=card.tenant_id,
                    card=card,
                    order=order,
                    type=LoyaltyTransactionType.ACCRUAL,
                    stamps_change=stamps_added,
                    points_change=points_added,
                    free_cups_change=card.free_cups_earned - earned_before,
                    order_amount=amount,
                    description=f"Order {order.order_number}",
                    employee=employee,
                )
        except IntegrityError:
            existing = LoyaltyTransaction.objects.get(
                order_id=order.pk, type=LoyaltyTransactionType.ACCRUAL
            )
            card.refresh_from_db()
            return AccrualResult(card=card, transaction=existing, created=False)

    logger.info(
        "Accrued order %s to card %s: +%s stamps, +%s points",
        order.order_number, card.card_number, stamps_added, points_added,
    )
    return AccrualResult(
        card=card,
        transaction=txn,
        created=True,
        stamps_added=stamps_added,
        points_added=points_added,
        free_cups_added=txn.free_cups_change,
    )


def redeem(card_id, order_id, requested, employee=None) -> RedemptionResult:
    """
    Spend `requested` free cups for an order. The balance check and the
    decrement are one conditional UPDATE, so two concurrent redemptions of
    the last cup cannot both succeed.
    """
    try:
        requested = int(requested)
    except (TypeError, ValueError):
        raise InvalidRedemption("Requested free drink count must be an integer.")
    if requested <= 0:
        raise InvalidRedemption("Requested free drink count must be positive.")

    with transaction.atomic():
        if LoyaltyTransaction.objects.filter(
            order_id=order_id, type=LoyaltyTransactionType.REDEMPTION
        ).exists():
            raise InvalidRedemption(f"Order {order_id} already redeemed free drinks.")

        # legacy rows without a stored earned count
        LoyaltyCard.objects.filter(pk=card_id, free_cups_earned__isnull=True).update(
            free_cups_earned=F("stamps") / STAMPS_PER_FREE_CUP
        )

        now = timezone.now()
        updated = LoyaltyCard.objects.filter(
            pk=card_id,
            is_active=True,
            free_cups_redeemed__lte=F("free_cups_earned") - requested,
        ).update(
            free_cups_redeemed=F("free_cups_redeemed") + requested,
            last_used_at=now,
            updated_at=now,
        )
        if not updated:
            card = LoyaltyCard.objects.filter(pk=card_id).first()
            if card is None or not card.is_active:
                raise CardNotFound(f"Loyalty card {card_id} not found or inactive.")
            available = compute_available_free_drinks(card)
            logger.info(
                "Redemption refused on card %s: requested %s, available %s",
                card.card_number, requested, available,
            )
            raise InsufficientBalance(requested, available)

        card = LoyaltyCard.objects.get(pk=card_id)
        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise InvalidRedemption(f"Order {order_id} does not exist.")
        if order.tenant_id != card.tenant_id:
            raise InvalidRedemption("Card and order belong to different tenants.")

        try:
            with transaction.atomic():
                txn = LoyaltyTransaction.objects.create(
                    tenant_id=card.tenant_id,
                    card=card,
                    order=order,
                    type=LoyaltyTransactionType.REDEMPTION,
                    free_cups_change=-requested,
                    order_amount=order.total_amount,
                    discount_amount=order.free_items_discount,
                    description=f"{requested} free drink(s) on order {order.order_number or order.pk}",
                    employee=employee,
                )
        except IntegrityError:
            raise InvalidRedemption(f"Order {order_id} already redeemed free drinks.")

    remaining = compute_available_free_drinks(card)
    logger.info("Redeemed %s free cup(s) on card %s, %s left", requested, card.card_number, remaining)
    return RedemptionResult(card=card, transaction=txn, redeemed=requested, remaining=remaining)


def adjust(card_id, stamps: int = 0, points: int = 0, reason: str = "", employee=None) -> LoyaltyTransaction:
    """
    Manual correction by a manager. Refuses anything that would leave the
    card with more redeemed than earned free cups or negative balances.
    """
    stamps = int(stamps or 0)
    points = int(points or 0)
    if not (reason or "").strip():
        raise InvalidAdjustment("A reason is required for manual adjustments.")
    if stamps == 0 and points == 0:
        raise InvalidAdjustment("Nothing to adjust.")

    with transaction.atomic():
        card = LoyaltyCard.objects.select_for_update().get(pk=card_id)
        if not card.is_active:
            raise CardNotFound(f"Loyalty card {card_id} not found or inactive.")

        earned_before = card.free_cups_earned
        if earned_before is None:
            earned_before = earned_free_cups(card.stamps)

        new_stamps = card.stamps + stamps
        new_points = card.points + points
        if new_stamps < 0 or new_points < 0:
            raise InvalidAdjustment("Adjustment would make the balance negative.")
        new_earned = earned_free_cups(new_stamps)
        if new_earned < card.free_cups_redeemed:
            raise InvalidAdjustment(
                f"Card already redeemed {card.free_cups_redeemed} free cup(s); "
                f"{new_stamps} stamps only cover {new_earned}."
            )

        card.stamps = new_stamps
        card.free_cups_earned = new_earned
        card.points = new_points
        card.save(update_fields=["stamps", "free_cups_earned", "points", "updated_at"])

        txn = LoyaltyTransaction.objects.create(
            tenant_id=card.tenant_id,
            card=card,
            type=LoyaltyTransactionType.ADJUSTMENT,
            stamps_change=stamps,
            points_change=points,
            free_cups_change=new_earned - earned_before,
            description=reason.strip()[:255],
            employee=employee,
        )

    logger.info(
        "Manual adjustment on card %s: stamps %+d, points %+d (%s)",
        card.card_number, stamps, points, reason,
    )
    return txn


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

def rebuild_counters(card: LoyaltyCard) -> CounterReport:
    """
    Recompute the card's counters from its transaction log and compare them
    with what is stored.
    """
    txns = LoyaltyTransaction.objects.filter(card=card)
    sums = txns.aggregate(
        stamps=Sum("stamps_change"),
        points=Sum("points_change"),
        available=Sum("free_cups_change"),
    )
    spent = txns.exclude(type=LoyaltyTransactionType.REDEMPTION).aggregate(
        total=Sum("order_amount")
    )["total"]

    stamps = sums["stamps"] or 0
    earned = earned_free_cups(stamps)
    expected = {
        "stamps": stamps,
        "free_cups_earned": earned,
        "free_cups_redeemed": earned - (sums["available"] or 0),
        "points": sums["points"] or 0,
        "total_spent": (spent or Decimal("0.00")).quantize(Decimal("0.01")),
    }

    mismatches = {}
    for name, value in expected.items():
        stored = getattr(card, name)
        if name == "free_cups_earned" and stored is None:
            stored = earned_free_cups(card.stamps)
        if stored != value:
            mismatches[name] = (stored, value)
    return CounterReport(card=card, expected=expected, mismatches=mismatches)
