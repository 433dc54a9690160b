from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import requests
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from loyalty.exceptions import LoyaltyError
from menu.models import CoffeeItem
from orders.exceptions import OrderError
from orders.models import Order
from orders.services import create_order
from outbox import services
from outbox.client import OrderRejected, OrderServerClient, ServerUnavailable
from outbox.models import CachedLoyaltyCard, OutboxEntry, OutboxStatus, OutboxSyncState
from outbox.tasks import flush_outbox_task
from tenants.models import Tenant


class ServerBackedClient:
    """
    Stands in for OrderServerClient by calling the order service directly.
    `drop_responses` simulates a POST that reached the server but whose
    response never came back.
    """

    def __init__(self, tenant, online=True, drop_responses=0):
        self.tenant = tenant
        self.online = online
        self.drop_responses = drop_responses
        self.keys = []

    def is_online(self):
        return self.online

    def create_order(self, payload, idempotency_key):
        if not self.online:
            raise ServerUnavailable("connection refused")
        try:
            order, _ = create_order(self.tenant, payload, idempotency_key=idempotency_key)
        except (OrderError, LoyaltyError) as exc:
            raise OrderRejected(exc.status_code, detail=str(exc), code=exc.code)
        self.keys.append(idempotency_key)
        if self.drop_responses:
            self.drop_responses -= 1
            raise ServerUnavailable("read timed out")
        return {"id": order.pk, "order_number": order.order_number}


class OutboxFixtureMixin:
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Qahwa", code="qahwa")
        self.latte = CoffeeItem.objects.create(
            tenant=self.tenant, code="latte", name="Latte", price=Decimal("12.00")
        )
        self.payload = {
            "items": [{"coffee_item_id": self.latte.id, "quantity": 2}],
            "payment_method": "cash",
        }

    def _online(self, **kwargs):
        return ServerBackedClient(self.tenant, **kwargs)

    def _offline(self):
        return ServerBackedClient(self.tenant, online=False)


class SubmitOrderTests(OutboxFixtureMixin, TestCase):
    def test_online_submit_returns_server_number(self):
        result = services.submit_order(self.payload, client=self._online())

        self.assertFalse(result.offline)
        self.assertTrue(result.order_number.startswith("ORD-QAHWA-"))
        self.assertFalse(OutboxEntry.objects.exists())
        self.assertEqual(Order.objects.get().idempotency_key, result.temp_id)

    def test_offline_submit_queues_with_temp_id(self):
        result = services.submit_order(self.payload, client=self._offline())

        self.assertTrue(result.offline)
        self.assertTrue(result.order_number.startswith("OFF-"))
        entry = OutboxEntry.objects.get()
        self.assertEqual(entry.temp_id, result.temp_id)
        self.assertEqual(entry.status, OutboxStatus.PENDING)
        self.assertEqual(entry.payload["offline_id"], result.temp_id)
        self.assertFalse(Order.objects.exists())

    def test_rejection_is_raised_not_queued(self):
        bad = dict(self.payload, items=[{"coffee_item_id": 999, "quantity": 1}])
        with self.assertRaises(OrderRejected):
            services.submit_order(bad, client=self._online())
        self.assertFalse(OutboxEntry.objects.exists())

    def test_new_orders_wait_behind_backlog(self):
        first = services.submit_order(self.payload, client=self._offline())
        second = services.submit_order(self.payload, client=self._online())

        self.assertTrue(second.offline)
        self.assertEqual(OutboxEntry.objects.count(), 2)

        client = self._online()
        report = services.flush(client=client)

        self.assertEqual(report.synced, 2)
        self.assertEqual(client.keys, [first.temp_id, second.temp_id])

    def test_temp_ids_are_unique(self):
        ids = {services.new_temp_id() for _ in range(50)}
        self.assertEqual(len(ids), 50)


class FlushTests(OutboxFixtureMixin, TestCase):
    def test_lost_response_resolves_to_one_order(self):
        queued = services.submit_order(self.payload, client=self._offline())

        report = services.flush(client=self._online(drop_responses=1))
        self.assertEqual(report.retried, 1)
        entry = OutboxEntry.objects.get()
        self.assertEqual(entry.status, OutboxStatus.PENDING)
        self.assertEqual(entry.retry_count, 1)
        self.assertEqual(Order.objects.count(), 1)

        report = services.flush(client=self._online())
        self.assertEqual(report.synced, 1)
        entry.refresh_from_db()
        order = Order.objects.get()
        self.assertEqual(entry.status, OutboxStatus.SYNCED)
        self.assertEqual(entry.order_number, order.order_number)
        self.assertEqual(order.idempotency_key, queued.temp_id)

    def test_offline_server_skips_cycle(self):
        services.submit_order(self.payload, client=self._offline())
        report = services.flush(client=self._offline())

        self.assertEqual(report.skipped, "offline")
        self.assertEqual(OutboxEntry.objects.get().retry_count, 0)
        self.assertFalse(OutboxSyncState.load().is_syncing)

    def test_busy_flag_skips_cycle(self):
        state = OutboxSyncState.load()
        state.is_syncing = True
        state.started_at = timezone.now()
        state.save()
        client = mock.Mock()

        report = services.flush(client=client)

        self.assertEqual(report.skipped, "busy")
        client.is_online.assert_not_called()

    def test_stale_flag_is_taken_over(self):
        state = OutboxSyncState.load()
        state.is_syncing = True
        state.started_at = timezone.now() - timedelta(hours=1)
        state.save()

        report = services.flush(client=self._online())

        self.assertEqual(report.skipped, "")
        state.refresh_from_db()
        self.assertFalse(state.is_syncing)
        self.assertIsNotNone(state.last_finished_at)

    def test_stuck_processing_entries_are_reset(self):
        services.enqueue(self.payload, "OFF-STUCK")
        OutboxEntry.objects.update(status=OutboxStatus.PROCESSING)

        report = services.flush(client=self._online())

        self.assertEqual(report.reset, 1)
        self.assertEqual(report.synced, 1)

    def test_network_failure_stops_the_cycle(self):
        services.enqueue(self.payload, "OFF-A")
        services.enqueue(self.payload, "OFF-B")
        client = mock.Mock()
        client.is_online.return_value = True
        client.create_order.side_effect = ServerUnavailable("connection reset")

        report = services.flush(client=client)

        self.assertEqual(report.attempted, 1)
        self.assertEqual(OutboxEntry.objects.get(temp_id="OFF-B").retry_count, 0)

    def test_server_error_moves_on_to_next_entry(self):
        services.enqueue(self.payload, "OFF-A")
        services.enqueue(self.payload, "OFF-B")
        client = mock.Mock()
        client.is_online.return_value = True
        client.create_order.side_effect = ServerUnavailable("HTTP 503", status_code=503)

        report = services.flush(client=client)

        self.assertEqual(report.attempted, 2)
        self.assertEqual(report.retried, 2)
        self.assertEqual(OutboxEntry.objects.get(temp_id="OFF-B").last_status_code, 503)

    def test_repeated_rejection_parks_entry(self):
        bad = dict(self.payload, items=[{"coffee_item_id": 999, "quantity": 1}])
        services.enqueue(bad, "OFF-BAD")
        client = self._online()

        for _ in range(services.MAX_REJECTIONS - 1):
            services.flush(client=client)
        entry = OutboxEntry.objects.get()
        self.assertEqual(entry.status, OutboxStatus.PENDING)

        report = services.flush(client=client)
        self.assertEqual(report.failed, 1)
        entry.refresh_from_db()
        self.assertEqual(entry.status, OutboxStatus.FAILED)
        self.assertEqual(entry.last_status_code, 400)

        # failed entries stay out of later cycles
        self.assertEqual(services.flush(client=client).attempted, 0)

    def test_requeue_failed_entry(self):
        entry = services.enqueue(self.payload, "OFF-X")
        with self.assertRaises(ValueError):
            services.requeue("OFF-X")

        OutboxEntry.objects.filter(pk=entry.pk).update(status=OutboxStatus.FAILED, rejection_count=5)
        call_command("outbox_status", "--requeue", "OFF-X", stdout=StringIO())

        entry.refresh_from_db()
        self.assertEqual(entry.status, OutboxStatus.PENDING)
        self.assertEqual(entry.rejection_count, 0)

    def test_prune_keeps_recent_synced_entries(self):
        now = timezone.now()
        old = services.enqueue(self.payload, "OFF-OLD")
        recent = services.enqueue(self.payload, "OFF-NEW")
        OutboxEntry.objects.filter(pk=old.pk).update(
            status=OutboxStatus.SYNCED, synced_at=now - timedelta(days=services.SYNCED_RETENTION_DAYS + 1)
        )
        OutboxEntry.objects.filter(pk=recent.pk).update(status=OutboxStatus.SYNCED, synced_at=now)

        self.assertEqual(services.prune_synced(now=now), 1)
        self.assertEqual(list(OutboxEntry.objects.values_list("temp_id", flat=True)), ["OFF-NEW"])

    def test_celery_task_returns_report(self):
        with mock.patch("outbox.tasks.flush") as flush:
            flush.return_value = services.FlushReport(attempted=1, synced=1)
            result = flush_outbox_task.apply().get()
        self.assertEqual(result["synced"], 1)


class CardMirrorTests(TestCase):
    card = {
        "id": 41,
        "card_number": "QC-2601-ABC123",
        "qr_token": "tok-41",
        "phone_number": "+966500000001",
        "customer_name": "Sara",
        "stamps": 14,
        "free_cups_earned": 2,
        "free_cups_redeemed": 1,
        "available_free_drinks": 1,
        "points": 80,
        "tier": "bronze",
    }

    def test_online_lookup_refreshes_mirror_and_offline_reads_it(self):
        client = mock.Mock()
        client.lookup_card.return_value = self.card

        data, from_cache = services.lookup_card_with_fallback(client, qr_token="tok-41")
        self.assertFalse(from_cache)
        self.assertEqual(CachedLoyaltyCard.objects.get().available_free_drinks, 1)

        client.lookup_card.side_effect = ServerUnavailable("timeout")
        data, from_cache = services.lookup_card_with_fallback(client, phone="+966 50 000 0001")
        self.assertTrue(from_cache)
        self.assertEqual(data["card_number"], "QC-2601-ABC123")

    def test_offline_unknown_card(self):
        client = mock.Mock()
        client.lookup_card.side_effect = ServerUnavailable("timeout")
        data, from_cache = services.lookup_card_with_fallback(client, card_number="QC-NOPE")
        self.assertIsNone(data)
        self.assertTrue(from_cache)


class OrderServerClientTests(TestCase):
    def _client(self, status_code=None, body=None, exc=None):
        session = mock.Mock()
        if exc is not None:
            session.request.side_effect = exc
        else:
            response = mock.Mock(status_code=status_code)
            response.json.return_value = body or {}
            session.request.return_value = response
        client = OrderServerClient(
            base_url="http://server", token="t0k", tenant_code="qahwa", session=session
        )
        return client, session

    def test_sends_idempotency_key(self):
        client, session = self._client(201, {"order_number": "ORD-QAHWA-000001"})

        data = client.create_order({"items": []}, idempotency_key="OFF-1")

        self.assertEqual(data["order_number"], "ORD-QAHWA-000001")
        headers = session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Idempotency-Key"], "OFF-1")
        self.assertEqual(headers["Authorization"], "Bearer t0k")
        self.assertEqual(headers["X-Tenant-Code"], "qahwa")

    def test_network_error_is_transient(self):
        client, _ = self._client(exc=requests.ConnectionError("refused"))
        with self.assertRaises(ServerUnavailable) as ctx:
            client.create_order({}, idempotency_key="OFF-1")
        self.assertIsNone(ctx.exception.status_code)
        self.assertFalse(client.is_online())

    def test_5xx_and_429_are_transient(self):
        for code in (500, 503, 429):
            client, _ = self._client(code, {"detail": "busy"})
            with self.assertRaises(ServerUnavailable):
                client.create_order({}, idempotency_key="OFF-1")

    def test_4xx_is_a_rejection(self):
        client, _ = self._client(409, {"detail": "Insufficient free drinks", "code": "insufficient_balance"})
        with self.assertRaises(OrderRejected) as ctx:
            client.create_order({}, idempotency_key="OFF-1")
        self.assertEqual(ctx.exception.code, "insufficient_balance")
        self.assertEqual(ctx.exception.status_code, 409)

    def test_unknown_card_lookup_is_none(self):
        client, _ = self._client(404, {"code": "card_not_found"})
        self.assertIsNone(client.lookup_card(phone="+966500000009"))

    def test_unreadable_success_body_is_transient(self):
        client, session = self._client(201)
        session.request.return_value.json.side_effect = ValueError("Expecting value")

        with self.assertRaises(ServerUnavailable) as ctx:
            client.create_order({}, idempotency_key="OFF-1")
        self.assertEqual(ctx.exception.status_code, 201)

    def test_unreadable_success_body_leaves_entry_pending(self):
        services.enqueue({"items": [], "payment_method": "cash"}, "OFF-A")
        client, session = self._client(201)
        session.request.return_value.json.side_effect = ValueError("Expecting value")
        client.is_online = mock.Mock(return_value=True)

        report = services.flush(client=client)

        self.assertEqual(report.retried, 1)
        entry = OutboxEntry.objects.get(temp_id="OFF-A")
        self.assertEqual(entry.status, OutboxStatus.PENDING)
        self.assertEqual(entry.last_status_code, 201)
