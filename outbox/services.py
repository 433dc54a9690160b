# outbox/services.py
"""
Offline order outbox for a POS terminal.

submit_order() tries the server first and falls back to a pending
OutboxEntry when the write cannot be confirmed. flush() is the single
consumer that replays pending entries in creation order; the temp id is
sent as Idempotency-Key, so an entry whose response was lost is resolved
to the same server order on the next attempt.
"""
import logging
import secrets
from dataclasses import asdict, dataclass, field
from datetime import timedelta

from django.conf import settings
from django.db.models import Count, Q
from django.utils import timezone

from customers.models import normalize_phone
from .client import OrderRejected, OrderServerClient, ServerUnavailable
from .models import CachedLoyaltyCard, OutboxEntry, OutboxStatus, OutboxSyncState

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "OFF-"

MAX_REJECTIONS = getattr(settings, "OUTBOX_MAX_REJECTIONS", 5)
SYNCED_RETENTION_DAYS = getattr(settings, "OUTBOX_SYNCED_RETENTION_DAYS", 7)
SYNC_STALE_SECONDS = getattr(settings, "OUTBOX_SYNC_STALE_SECONDS", 300)


@dataclass
class SubmitResult:
    order_number: str
    offline: bool
    temp_id: str
    order: dict | None = None


@dataclass
class FlushReport:
    skipped: str = ""
    reset: int = 0
    attempted: int = 0
    synced: int = 0
    retried: int = 0
    failed: int = 0
    pruned: int = 0
    synced_order_numbers: list = field(default_factory=list)

    def as_dict(self):
        return asdict(self)


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{timezone.now():%Y%m%d%H%M%S}-{secrets.token_hex(4).upper()}"


def has_backlog() -> bool:
    return OutboxEntry.objects.filter(
        status__in=[OutboxStatus.PENDING, OutboxStatus.PROCESSING]
    ).exists()


def enqueue(payload: dict, temp_id: str, error: str = "") -> OutboxEntry:
    return OutboxEntry.objects.create(
        temp_id=temp_id,
        payload=payload,
        last_error=error[:1000],
    )


def submit_order(payload: dict, client: OrderServerClient | None = None, temp_id: str | None = None) -> SubmitResult:
    """
    Online: POST now and return the server order number.
    Offline (network error, timeout, 5xx): queue and return the temp id as
    the order number. A 4xx rejection is raised as OrderRejected so the
    cashier can fix the cart; it is never queued.

    While older entries are still waiting, new orders queue behind them so
    the server sees this terminal's orders in the order they were taken.
    """
    temp_id = temp_id or new_temp_id()
    body = dict(payload)
    body["offline_id"] = temp_id

    if has_backlog():
        enqueue(body, temp_id, "queued behind unsynced orders")
        logger.info("Queued order %s behind existing backlog", temp_id)
        return SubmitResult(order_number=temp_id, offline=True, temp_id=temp_id)

    client = client or OrderServerClient()
    try:
        data = client.create_order(body, idempotency_key=temp_id)
    except ServerUnavailable as exc:
        enqueue(body, temp_id, str(exc))
        logger.warning("Server unavailable, order %s queued offline: %s", temp_id, exc)
        return SubmitResult(order_number=temp_id, offline=True, temp_id=temp_id)

    return SubmitResult(
        order_number=data.get("order_number") or "",
        offline=False,
        temp_id=temp_id,
        order=data,
    )


# ---------------------------------------------------------------------------
# Flush loop
# ---------------------------------------------------------------------------

def acquire_sync_flag() -> bool:
    """
    Set the in-flight flag unless another cycle holds it. A flag older than
    OUTBOX_SYNC_STALE_SECONDS belongs to a dead worker and is taken over.
    """
    OutboxSyncState.load()
    now = timezone.now()
    stale_before = now - timedelta(seconds=SYNC_STALE_SECONDS)
    acquired = (
        OutboxSyncState.objects.filter(pk=1)
        .filter(Q(is_syncing=False) | Q(started_at__lt=stale_before) | Q(started_at__isnull=True))
        .update(is_syncing=True, started_at=now)
    )
    return bool(acquired)


def release_sync_flag(report: FlushReport) -> None:
    OutboxSyncState.objects.filter(pk=1).update(
        is_syncing=False,
        last_finished_at=timezone.now(),
        last_report=report.as_dict(),
    )


def reset_stuck_processing() -> int:
    """
    Entries left in `processing` by a crashed cycle go back to pending.
    Only called while holding the sync flag.
    """
    count = OutboxEntry.objects.filter(status=OutboxStatus.PROCESSING).update(status=OutboxStatus.PENDING)
    if count:
        logger.warning("Reset %s outbox entries stuck in processing", count)
    return count


def _claim(entry_id) -> bool:
    return bool(
        OutboxEntry.objects.filter(pk=entry_id, status=OutboxStatus.PENDING).update(
            status=OutboxStatus.PROCESSING,
            last_attempt_at=timezone.now(),
        )
    )


def _deliver(entry: OutboxEntry, client: OrderServerClient, report: FlushReport) -> bool:
    """
    Send one claimed entry. Returns False when the server stopped
    answering, so the cycle can stop early.
    """
    try:
        data = client.create_order(entry.payload, idempotency_key=entry.temp_id)
    except ServerUnavailable as exc:
        entry.status = OutboxStatus.PENDING
        entry.retry_count += 1
        entry.rejection_count = 0
        entry.last_error = str(exc)[:1000]
        entry.last_status_code = exc.status_code
        entry.save(update_fields=["status", "retry_count", "rejection_count", "last_error", "last_status_code"])
        report.retried += 1
        logger.info("Outbox %s will retry (attempt %s): %s", entry.temp_id, entry.retry_count, exc)
        return exc.status_code is not None
    except OrderRejected as exc:
        entry.retry_count += 1
        entry.rejection_count += 1
        entry.last_error = str(exc)[:1000]
        entry.last_status_code = exc.status_code
        if entry.rejection_count >= MAX_REJECTIONS:
            entry.status = OutboxStatus.FAILED
            report.failed += 1
            logger.error(
                "Outbox %s parked as failed after %s rejections: %s",
                entry.temp_id, entry.rejection_count, exc,
            )
        else:
            entry.status = OutboxStatus.PENDING
            report.retried += 1
            logger.warning("Outbox %s rejected (%s/%s): %s", entry.temp_id, entry.rejection_count, MAX_REJECTIONS, exc)
        entry.save(update_fields=["status", "retry_count", "rejection_count", "last_error", "last_status_code"])
        return True

    entry.status = OutboxStatus.SYNCED
    entry.order_number = data.get("order_number") or ""
    entry.synced_at = timezone.now()
    entry.last_error = ""
    entry.last_status_code = None
    entry.save(update_fields=["status", "order_number", "synced_at", "last_error", "last_status_code"])
    report.synced += 1
    report.synced_order_numbers.append(entry.order_number)
    logger.info("Outbox %s synced as %s", entry.temp_id, entry.order_number)
    return True


def flush(client: OrderServerClient | None = None) -> FlushReport:
    """
    One sync cycle. No-op when another cycle is running or the server
    health probe fails.
    """
    report = FlushReport()
    if not acquire_sync_flag():
        report.skipped = "busy"
        return report

    try:
        client = client or OrderServerClient()
        report.reset = reset_stuck_processing()

        if not client.is_online():
            report.skipped = "offline"
            return report

        pending_ids = list(
            OutboxEntry.objects.filter(status=OutboxStatus.PENDING)
            .order_by("created_at", "id")
            .values_list("id", flat=True)
        )
        for entry_id in pending_ids:
            if not _claim(entry_id):
                continue
            report.attempted += 1
            entry = OutboxEntry.objects.get(pk=entry_id)
            if not _deliver(entry, client, report):
                logger.warning("Server went away mid-cycle; %s entries left for next cycle", len(pending_ids) - report.attempted)
                break

        report.pruned = prune_synced()
    finally:
        release_sync_flag(report)

    if report.attempted:
        logger.info(
            "Outbox flush: attempted=%s synced=%s retried=%s failed=%s",
            report.attempted, report.synced, report.retried, report.failed,
        )
    return report


def requeue(temp_id: str) -> OutboxEntry:
    """
    Put a failed entry back in the queue (after the cause was fixed on the
    server, e.g. a menu item re-enabled).
    """
    entry = OutboxEntry.objects.get(temp_id=temp_id)
    if entry.status != OutboxStatus.FAILED:
        raise ValueError(f"Outbox entry {temp_id} is {entry.status}, only failed entries can be requeued.")
    entry.status = OutboxStatus.PENDING
    entry.rejection_count = 0
    entry.save(update_fields=["status", "rejection_count"])
    logger.info("Outbox %s requeued", temp_id)
    return entry


def prune_synced(now=None) -> int:
    cutoff = (now or timezone.now()) - timedelta(days=SYNCED_RETENTION_DAYS)
    deleted, _ = OutboxEntry.objects.filter(status=OutboxStatus.SYNCED, synced_at__lt=cutoff).delete()
    return deleted


def outbox_counts() -> dict:
    counts = {status: 0 for status in OutboxStatus.values}
    for row in OutboxEntry.objects.values("status").annotate(n=Count("id")):
        counts[row["status"]] = row["n"]
    return counts


# ---------------------------------------------------------------------------
# Local card mirror
# ---------------------------------------------------------------------------

def remember_card(data: dict) -> CachedLoyaltyCard:
    card, _ = CachedLoyaltyCard.objects.update_or_create(
        card_id=data["id"],
        defaults={
            "card_number": data.get("card_number") or "",
            "qr_token": data.get("qr_token") or "",
            "phone_number": data.get("phone_number") or "",
            "customer_name": data.get("customer_name") or "",
            "stamps": data.get("stamps") or 0,
            "free_cups_earned": data.get("free_cups_earned") or 0,
            "free_cups_redeemed": data.get("free_cups_redeemed") or 0,
            "available_free_drinks": data.get("available_free_drinks") or 0,
            "points": data.get("points") or 0,
            "tier": data.get("tier") or "",
            "data": data,
            "refreshed_at": timezone.now(),
        },
    )
    return card


def cached_card(phone=None, card_number=None, qr_token=None) -> CachedLoyaltyCard | None:
    qs = CachedLoyaltyCard.objects.all()
    if qr_token:
        return qs.filter(qr_token=qr_token).first()
    if card_number:
        return qs.filter(card_number__iexact=card_number).first()
    if phone:
        return qs.filter(phone_number=normalize_phone(phone)).first()
    return None


def lookup_card_with_fallback(client: OrderServerClient | None = None, phone=None, card_number=None, qr_token=None):
    """
    Returns (card_data, from_cache). Online lookups refresh the mirror;
    offline lookups read it. card_data is None for an unknown card.
    """
    client = client or OrderServerClient()
    try:
        data = client.lookup_card(phone=phone, card_number=card_number, qr_token=qr_token)
    except ServerUnavailable as exc:
        logger.info("Card lookup offline, using local mirror: %s", exc)
        cached = cached_card(phone=phone, card_number=card_number, qr_token=qr_token)
        return (cached.data if cached else None), True
    if data:
        remember_card(data)
    return data, False
