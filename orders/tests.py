from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from customers.models import Customer
from discounts.models import DiscountCode
from loyalty import services as loyalty
from loyalty.exceptions import InsufficientBalance
from loyalty.models import CardStatus, LoyaltyCard, LoyaltyTransaction
from menu.models import CoffeeItem
from orders.exceptions import InvalidDiscountCode, InvalidOrder, InvalidTransition
from orders.models import Order, OrderEvent, OrderStatus
from orders.services import (
    allowed_next_statuses,
    can_transition,
    create_order,
    transition_status,
)
from orders.views import OrderListCreateView, OrderStatusView
from tenants.models import Tenant, TenantUser


User = get_user_model()


class OrderFixtureMixin:
    def setUp(self):
        self.factory = APIRequestFactory()
        self.tenant = Tenant.objects.create(name="Qahwa", code="qahwa")
        self.user = User.objects.create_user(username="cashier", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=self.user)
        self.latte = CoffeeItem.objects.create(
            tenant=self.tenant, code="latte", name="Latte", price=Decimal("12.00")
        )
        self.espresso = CoffeeItem.objects.create(
            tenant=self.tenant, code="espresso", name="Espresso", price=Decimal("8.00")
        )
        self.customer = Customer.objects.create(
            tenant=self.tenant, name="Sara", phone_number="+966500000001"
        )

    def _payload(self, **extra):
        payload = {
            "items": [
                {"coffee_item_id": self.latte.id, "quantity": 1},
                {"coffee_item_id": self.espresso.id, "quantity": 3},
            ],
            "payment_method": "cash",
        }
        payload.update(extra)
        return payload

    def _card_with_free_drinks(self, count):
        card = loyalty.issue_card(self.customer)
        loyalty.adjust(card.pk, stamps=6 * count, reason="Opening balance")
        return card


class CreateOrderTests(OrderFixtureMixin, TestCase):
    def test_prices_come_from_the_menu(self):
        order, created = create_order(self.tenant, self._payload(), employee=self.user)

        self.assertTrue(created)
        self.assertEqual(order.subtotal, Decimal("36.00"))
        self.assertEqual(order.total_amount, Decimal("36.00"))
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.order_number, f"ORD-QAHWA-{order.id:06d}")
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.events.get().action, "created")

    def test_replayed_key_returns_original_order(self):
        first, created = create_order(self.tenant, self._payload(), idempotency_key="OFF-1")
        second, replay_created = create_order(self.tenant, self._payload(), idempotency_key="OFF-1")

        self.assertTrue(created)
        self.assertFalse(replay_created)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Order.objects.count(), 1)

    def test_offline_id_is_used_as_key(self):
        create_order(self.tenant, self._payload(offline_id="OFF-2"))
        _, created = create_order(self.tenant, self._payload(offline_id="OFF-2"))
        self.assertFalse(created)

    def test_client_total_must_match(self):
        with self.assertRaises(InvalidOrder):
            create_order(self.tenant, self._payload(total_amount="30.00"))
        self.assertEqual(Order.objects.count(), 0)

    def test_unavailable_item_is_refused(self):
        self.latte.is_available = False
        self.latte.save(update_fields=["is_available"])
        with self.assertRaises(InvalidOrder):
            create_order(self.tenant, self._payload())

    def test_unknown_payment_method(self):
        with self.assertRaises(InvalidOrder):
            create_order(self.tenant, self._payload(payment_method="bitcoin"))

    def test_free_drinks_redeemed_with_the_order(self):
        card = self._card_with_free_drinks(2)

        order, _ = create_order(
            self.tenant,
            self._payload(card_id=card.pk, used_free_drinks=2, total_amount="20.00"),
        )

        self.assertEqual(order.free_items_discount, Decimal("16.00"))
        self.assertEqual(order.total_amount, Decimal("20.00"))
        self.assertEqual(order.customer_id, self.customer.pk)
        espresso_line = order.items.get(coffee_item=self.espresso)
        self.assertEqual(espresso_line.free_quantity, 2)
        self.assertEqual(espresso_line.line_total, Decimal("8.00"))
        card.refresh_from_db()
        self.assertEqual(loyalty.compute_available_free_drinks(card), 0)
        self.assertTrue(LoyaltyTransaction.objects.filter(order=order, type="redemption").exists())

    def test_insufficient_balance_leaves_no_order(self):
        card = self._card_with_free_drinks(1)

        with self.assertRaises(InsufficientBalance):
            create_order(self.tenant, self._payload(card_id=card.pk, used_free_drinks=2))

        self.assertEqual(Order.objects.count(), 0)
        card.refresh_from_db()
        self.assertEqual(card.free_cups_redeemed, 0)

    def test_free_drinks_and_code_are_exclusive(self):
        card = self._card_with_free_drinks(1)
        DiscountCode.objects.create(tenant=self.tenant, code="staff10", discount_percentage=10, reason="Staff")
        with self.assertRaises(InvalidOrder):
            create_order(
                self.tenant,
                self._payload(card_id=card.pk, used_free_drinks=1, discount_code="staff10"),
            )

    def test_discount_code_applies_and_counts_usage(self):
        dc = DiscountCode.objects.create(tenant=self.tenant, code="STAFF10", discount_percentage=10, reason="Staff")

        order, _ = create_order(self.tenant, self._payload(discount_code="Staff10"))

        self.assertEqual(order.discount_amount, Decimal("3.60"))
        self.assertEqual(order.total_amount, Decimal("32.40"))
        dc.refresh_from_db()
        self.assertEqual(dc.usage_count, 1)

    def test_inactive_discount_code(self):
        DiscountCode.objects.create(
            tenant=self.tenant, code="old", discount_percentage=50, reason="Launch", is_active=False
        )
        with self.assertRaises(InvalidDiscountCode):
            create_order(self.tenant, self._payload(discount_code="old"))

    def test_customer_resolved_by_phone(self):
        order, _ = create_order(
            self.tenant, self._payload(customer_phone="+966 55 123 4567", customer_name="Noura")
        )
        self.assertEqual(order.customer.phone_number, "+966551234567")
        order.customer.refresh_from_db()
        self.assertEqual(order.customer.visits_count, 1)


class StatusTransitionTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order, _ = create_order(self.tenant, self._payload(customer_id=self.customer.pk))

    def test_flow_helpers(self):
        self.assertTrue(can_transition("pending", "payment_confirmed"))
        self.assertTrue(can_transition("pending", "completed"))
        self.assertFalse(can_transition("ready", "in_progress"))
        self.assertFalse(can_transition("ready", "ready"))
        self.assertFalse(can_transition("completed", "cancelled"))
        self.assertEqual(allowed_next_statuses("completed"), [])
        self.assertIn("cancelled", allowed_next_statuses("ready"))

    def test_forward_moves_record_events(self):
        transition_status(self.order.pk, OrderStatus.PAYMENT_CONFIRMED, user=self.user)
        transition_status(self.order.pk, OrderStatus.IN_PROGRESS, user=self.user)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.IN_PROGRESS)
        changes = OrderEvent.objects.filter(order=self.order, action="status_changed")
        self.assertEqual([e.to_status for e in changes], ["payment_confirmed", "in_progress"])

    def test_backwards_move_is_refused(self):
        transition_status(self.order.pk, OrderStatus.READY)
        with self.assertRaises(InvalidTransition):
            transition_status(self.order.pk, OrderStatus.IN_PROGRESS)

    def test_cancel_needs_reason(self):
        with self.assertRaises(InvalidTransition):
            transition_status(self.order.pk, OrderStatus.CANCELLED, reason="  ")

        order = transition_status(self.order.pk, OrderStatus.CANCELLED, user=self.user, reason="Customer left")
        self.assertEqual(order.cancellation_reason, "Customer left")
        self.assertIsNotNone(order.cancelled_at)

    def test_terminal_states_are_final(self):
        transition_status(self.order.pk, OrderStatus.CANCELLED, reason="Duplicate")
        with self.assertRaises(InvalidTransition):
            transition_status(self.order.pk, OrderStatus.PENDING)
        with self.assertRaises(InvalidTransition):
            transition_status(self.order.pk, OrderStatus.COMPLETED)

    def test_completion_issues_card_and_accrues_once(self):
        transition_status(self.order.pk, OrderStatus.COMPLETED, user=self.user)

        card = LoyaltyCard.objects.get(customer=self.customer, is_active=True)
        self.assertEqual(card.stamps, 4)
        self.assertEqual(card.total_spent, Decimal("36.00"))
        self.assertEqual(LoyaltyTransaction.objects.filter(order=self.order, type="accrual").count(), 1)

        with self.assertRaises(InvalidTransition):
            transition_status(self.order.pk, OrderStatus.COMPLETED)
        card.refresh_from_db()
        self.assertEqual(card.stamps, 4)

    def test_cancelled_order_earns_nothing(self):
        transition_status(self.order.pk, OrderStatus.CANCELLED, reason="Wrong order")
        self.assertFalse(LoyaltyTransaction.objects.filter(order=self.order).exists())

    def test_suspended_card_blocks_auto_issue(self):
        card = loyalty.issue_card(self.customer)
        loyalty.deactivate_card(card, status=CardStatus.SUSPENDED)

        order = transition_status(self.order.pk, OrderStatus.COMPLETED, user=self.user)

        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(LoyaltyCard.objects.filter(customer=self.customer).count(), 1)
        card.refresh_from_db()
        self.assertEqual(card.status, CardStatus.SUSPENDED)
        self.assertEqual(card.stamps, 0)
        self.assertFalse(LoyaltyTransaction.objects.filter(order=self.order).exists())

    def test_guest_order_completes_without_card(self):
        order, _ = create_order(self.tenant, self._payload())
        transition_status(order.pk, OrderStatus.COMPLETED)
        self.assertFalse(LoyaltyCard.objects.exists())


class OrderApiTests(OrderFixtureMixin, TestCase):
    def _post(self, payload, **headers):
        request = self.factory.post("/api/v1/orders/", payload, format="json", **headers)
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        return OrderListCreateView.as_view()(request)

    def test_create_then_replay(self):
        first = self._post(self._payload(), HTTP_IDEMPOTENCY_KEY="OFF-20250101-ABCD")
        self.assertEqual(first.status_code, 201)

        second = self._post(self._payload(), HTTP_IDEMPOTENCY_KEY="OFF-20250101-ABCD")
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["order_number"], first.data["order_number"])
        self.assertEqual(Order.objects.count(), 1)

    def test_insufficient_balance_is_409(self):
        card = loyalty.issue_card(self.customer)
        response = self._post(self._payload(card_id=card.pk, used_free_drinks=1))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_balance")

    def test_status_patch(self):
        order, _ = create_order(self.tenant, self._payload())

        request = self.factory.patch(f"/api/v1/orders/{order.pk}/status", {"status": "cancelled"}, format="json")
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = OrderStatusView.as_view()(request, pk=order.pk)
        self.assertEqual(response.status_code, 400)

        request = self.factory.patch(f"/api/v1/orders/{order.pk}/status", {"status": "ready"}, format="json")
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = OrderStatusView.as_view()(request, pk=order.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ready")
        self.assertIn("completed", response.data["allowed_transitions"])

    def test_other_tenant_cannot_patch(self):
        other = Tenant.objects.create(name="Other", code="other")
        order, _ = create_order(self.tenant, self._payload())
        outsider = User.objects.create_user(username="outsider", password="pass")
        TenantUser.objects.create(tenant=other, user=outsider)

        request = self.factory.patch(f"/api/v1/orders/{order.pk}/status", {"status": "ready"}, format="json")
        force_authenticate(request, user=outsider)
        request.tenant = other
        response = OrderStatusView.as_view()(request, pk=order.pk)
        self.assertEqual(response.status_code, 404)
