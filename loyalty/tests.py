from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.roles import TenantRole
from customers.models import Customer
from loyalty import services
from loyalty.exceptions import (
    CardNotFound,
    InsufficientBalance,
    InvalidAdjustment,
    InvalidRedemption,
    LoyaltyError,
)
from loyalty.models import CardStatus, LoyaltyCard, LoyaltyProgram, LoyaltyTransaction
from loyalty.views import CardAdjustView, CardLookupView, CardRegisterView, RedeemView
from menu.models import CoffeeItem
from orders.models import Order, OrderItem, OrderStatus
from tenants.models import Tenant, TenantUser


User = get_user_model()


class LoyaltyFixtureMixin:
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
        self.card = services.issue_card(self.customer)

    def _order(self, lines, status=OrderStatus.COMPLETED, total=None):
        subtotal = sum((item.price * qty for item, qty in lines), Decimal("0.00"))
        order = Order.objects.create(
            tenant=self.tenant,
            customer=self.customer,
            subtotal=subtotal,
            total_amount=subtotal if total is None else total,
            payment_method="cash",
            status=status,
        )
        order.assign_order_number()
        order.save(update_fields=["order_number"])
        for item, qty in lines:
            OrderItem.objects.create(
                order=order,
                coffee_item=item,
                name=item.name,
                unit_price=item.price,
                quantity=qty,
                line_total=item.price * qty,
            )
        return order

    def _set_counters(self, **counters):
        LoyaltyCard.objects.filter(pk=self.card.pk).update(**counters)
        self.card.refresh_from_db()


class FreeDrinkBalanceTests(LoyaltyFixtureMixin, TestCase):
    def test_available_is_earned_minus_redeemed(self):
        self._set_counters(stamps=29, free_cups_earned=4, free_cups_redeemed=1)
        self.assertEqual(services.compute_available_free_drinks(self.card), 3)

    def test_missing_earned_count_falls_back_to_stamps(self):
        self._set_counters(stamps=13, free_cups_earned=None, free_cups_redeemed=0)
        self.assertEqual(services.compute_available_free_drinks(self.card), 2)

    def test_no_card_means_zero(self):
        self.assertEqual(services.compute_available_free_drinks(None), 0)

    def test_lookup_normalizes_phone_and_skips_inactive_cards(self):
        found = services.lookup_card(self.tenant, phone="+966 50-000 0001")
        self.assertEqual(found.pk, self.card.pk)

        services.deactivate_card(self.card)
        self.assertIsNone(services.lookup_card(self.tenant, phone="+966500000001"))
        self.assertIsNone(services.lookup_card(self.tenant))


class SelectFreeItemsTests(TestCase):
    def test_cheapest_units_first(self):
        cart = [
            {"item_id": "A", "unit_price": Decimal("12.00"), "quantity": 1},
            {"item_id": "B", "unit_price": Decimal("8.00"), "quantity": 3},
        ]
        self.assertEqual(services.select_free_items(cart, 2), {"B": 2})

    def test_spills_into_next_cheapest_line(self):
        cart = [
            {"item_id": "A", "unit_price": Decimal("12.00"), "quantity": 2},
            {"item_id": "B", "unit_price": Decimal("8.00"), "quantity": 1},
        ]
        self.assertEqual(services.select_free_items(cart, 2), {"B": 1, "A": 1})
        self.assertEqual(services.select_free_items(list(reversed(cart)), 2), {"B": 1, "A": 1})

    def test_ties_keep_cart_order(self):
        cart = [
            {"item_id": "X", "unit_price": "10.00", "quantity": 1},
            {"item_id": "Y", "unit_price": "10.00", "quantity": 1},
        ]
        self.assertEqual(services.select_free_items(cart, 1), {"X": 1})
        self.assertEqual(services.select_free_items(list(reversed(cart)), 1), {"Y": 1})

    def test_budget_larger_than_cart(self):
        cart = [{"id": 7, "price": "5.00", "qty": 2}]
        self.assertEqual(services.select_free_items(cart, 5), {7: 2})

    def test_zero_budget_and_empty_cart(self):
        cart = [{"item_id": 1, "unit_price": "5.00", "quantity": 2}]
        self.assertEqual(services.select_free_items(cart, 0), {})
        self.assertEqual(services.select_free_items([], 3), {})


class AccrualTests(LoyaltyFixtureMixin, TestCase):
    def test_completed_order_adds_stamps_points_and_spend(self):
        order = self._order([(self.latte, 2), (self.espresso, 5)])

        result = services.accrue(self.card.pk, order)

        self.assertTrue(result.created)
        self.card.refresh_from_db()
        self.assertEqual(self.card.stamps, 7)
        self.assertEqual(self.card.free_cups_earned, 1)
        self.assertEqual(self.card.points, 64)
        self.assertEqual(self.card.total_spent, Decimal("64.00"))
        self.assertIsNotNone(self.card.last_used_at)
        self.assertEqual(result.transaction.free_cups_change, 1)

    def test_second_accrual_for_same_order_is_a_noop(self):
        order = self._order([(self.latte, 1)])
        first = services.accrue(self.card.pk, order)
        second = services.accrue(self.card.pk, order)

        self.assertFalse(second.created)
        self.assertEqual(second.transaction.pk, first.transaction.pk)
        self.card.refresh_from_db()
        self.assertEqual(self.card.stamps, 1)
        self.assertEqual(LoyaltyTransaction.objects.filter(order=order).count(), 1)

    def test_open_order_does_not_accrue(self):
        order = self._order([(self.latte, 1)], status=OrderStatus.READY)
        with self.assertRaises(LoyaltyError):
            services.accrue(self.card.pk, order)

    def test_inactive_program_earns_stamps_but_no_points(self):
        LoyaltyProgram.objects.create(tenant=self.tenant, is_active=False)
        order = self._order([(self.latte, 1)])
        result = services.accrue(self.card.pk, order)
        self.assertEqual(result.stamps_added, 1)
        self.assertEqual(result.points_added, 0)

    def test_tier_follows_lifetime_spend(self):
        order = self._order([(self.latte, 1)], total=Decimal("600.00"))
        services.accrue(self.card.pk, order)
        self.card.refresh_from_db()
        self.assertEqual(self.card.tier, "silver")


class RedemptionTests(LoyaltyFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self._order([(self.latte, 1)], status=OrderStatus.PENDING)

    def test_redeem_decrements_balance(self):
        self._set_counters(stamps=29, free_cups_earned=4, free_cups_redeemed=1)

        result = services.redeem(self.card.pk, self.order.pk, 2)

        self.assertEqual(result.redeemed, 2)
        self.assertEqual(result.remaining, 1)
        self.card.refresh_from_db()
        self.assertEqual(self.card.free_cups_redeemed, 3)
        self.assertEqual(result.transaction.free_cups_change, -2)

    def test_insufficient_balance_leaves_card_untouched(self):
        self._set_counters(stamps=6, free_cups_earned=1, free_cups_redeemed=0)

        with self.assertRaises(InsufficientBalance) as ctx:
            services.redeem(self.card.pk, self.order.pk, 2)

        self.assertEqual(ctx.exception.available, 1)
        self.assertEqual(ctx.exception.status_code, 409)
        self.card.refresh_from_db()
        self.assertEqual(self.card.free_cups_redeemed, 0)
        self.assertFalse(LoyaltyTransaction.objects.filter(card=self.card).exists())

    def test_last_cup_cannot_be_spent_twice_from_a_stale_read(self):
        self._set_counters(stamps=6, free_cups_earned=1, free_cups_redeemed=0)
        stale = LoyaltyCard.objects.get(pk=self.card.pk)
        other_order = self._order([(self.espresso, 1)], status=OrderStatus.PENDING)

        services.redeem(self.card.pk, self.order.pk, 1)
        self.assertEqual(services.compute_available_free_drinks(stale), 1)
        with self.assertRaises(InsufficientBalance):
            services.redeem(stale.pk, other_order.pk, 1)

        self.card.refresh_from_db()
        self.assertEqual(self.card.free_cups_redeemed, 1)

    def test_same_order_cannot_redeem_twice(self):
        self._set_counters(stamps=12, free_cups_earned=2, free_cups_redeemed=0)
        services.redeem(self.card.pk, self.order.pk, 1)
        with self.assertRaises(InvalidRedemption):
            services.redeem(self.card.pk, self.order.pk, 1)

    def test_non_positive_request_is_refused(self):
        with self.assertRaises(InvalidRedemption):
            services.redeem(self.card.pk, self.order.pk, 0)

    def test_inactive_card_is_not_found(self):
        self._set_counters(stamps=6, free_cups_earned=1)
        services.deactivate_card(self.card)
        with self.assertRaises(CardNotFound):
            services.redeem(self.card.pk, self.order.pk, 1)

    def test_legacy_card_without_earned_count(self):
        self._set_counters(stamps=12, free_cups_earned=None, free_cups_redeemed=0)
        services.redeem(self.card.pk, self.order.pk, 2)
        self.card.refresh_from_db()
        self.assertEqual(self.card.free_cups_earned, 2)
        self.assertEqual(self.card.free_cups_redeemed, 2)


class AdjustmentAndAuditTests(LoyaltyFixtureMixin, TestCase):
    def test_adjust_records_transaction(self):
        txn = services.adjust(self.card.pk, stamps=6, points=10, reason="Lost paper card")
        self.card.refresh_from_db()
        self.assertEqual(self.card.stamps, 6)
        self.assertEqual(self.card.free_cups_earned, 1)
        self.assertEqual(txn.free_cups_change, 1)

    def test_adjust_cannot_drop_below_redeemed(self):
        services.adjust(self.card.pk, stamps=6, reason="Promo")
        order = self._order([(self.latte, 1)], status=OrderStatus.PENDING)
        services.redeem(self.card.pk, order.pk, 1)

        with self.assertRaises(InvalidAdjustment):
            services.adjust(self.card.pk, stamps=-1, reason="Typo")

    def test_adjust_needs_a_reason(self):
        with self.assertRaises(InvalidAdjustment):
            services.adjust(self.card.pk, stamps=1, reason=" ")

    def test_transactions_are_write_once(self):
        txn = services.adjust(self.card.pk, stamps=1, reason="Promo")
        txn.description = "edited"
        with self.assertRaises(LoyaltyError):
            txn.save()
        with self.assertRaises(LoyaltyError):
            txn.delete()

    def test_counters_rebuild_from_ledger(self):
        services.accrue(self.card.pk, self._order([(self.espresso, 7)]))
        services.redeem(self.card.pk, self._order([(self.latte, 1)], status=OrderStatus.PENDING).pk, 1)
        services.adjust(self.card.pk, points=-3, reason="Correction")

        self.card.refresh_from_db()
        report = services.rebuild_counters(self.card)
        self.assertTrue(report.ok, report.mismatches)
        self.assertEqual(report.expected["free_cups_redeemed"], 1)

    def test_reissue_carries_balances_over(self):
        services.accrue(self.card.pk, self._order([(self.espresso, 13)]))
        self.card.refresh_from_db()

        new = services.reissue_card(self.card)

        self.card.refresh_from_db()
        self.assertFalse(self.card.is_active)
        self.assertEqual(self.card.replaced_by_id, new.pk)
        self.assertEqual(new.stamps, 13)
        self.assertEqual(services.compute_available_free_drinks(new), 2)
        self.assertTrue(services.rebuild_counters(new).ok)

    def test_loyalty_check_command(self):
        services.accrue(self.card.pk, self._order([(self.latte, 3)]))
        out = StringIO()
        call_command("loyalty_check", stdout=out)
        self.assertIn("clean", out.getvalue())

        LoyaltyCard.objects.filter(pk=self.card.pk).update(stamps=99)
        with self.assertRaises(CommandError):
            call_command("loyalty_check", stdout=StringIO())

        call_command("loyalty_check", "--fix", stdout=StringIO())
        self.card.refresh_from_db()
        self.assertEqual(self.card.stamps, 3)


class LoyaltyApiTests(LoyaltyFixtureMixin, TestCase):
    def _post(self, view, path, payload, user=None, **kwargs):
        request = self.factory.post(path, payload, format="json")
        force_authenticate(request, user=user or self.user)
        request.tenant = self.tenant
        return view.as_view()(request, **kwargs)

    def test_lookup_unknown_phone_is_404(self):
        request = self.factory.get("/api/v1/loyalty/cards/lookup", {"phone": "+966599999999"})
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = CardLookupView.as_view()(request)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "card_not_found")

    def test_lookup_by_qr_token(self):
        request = self.factory.get("/api/v1/loyalty/cards/lookup", {"qr_token": self.card.qr_token})
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = CardLookupView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["card_number"], self.card.card_number)

    def test_redeem_without_balance_is_409(self):
        order = self._order([(self.latte, 1)], status=OrderStatus.PENDING)
        response = self._post(
            RedeemView,
            "/api/v1/loyalty/redeem",
            {"card_id": self.card.pk, "order_id": order.pk, "requested_free_drink_count": 1},
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_balance")

    def test_adjust_requires_manager(self):
        payload = {"stamps": 6, "reason": "Goodwill"}
        response = self._post(CardAdjustView, "/x", payload, pk=self.card.pk)
        self.assertEqual(response.status_code, 403)

        manager = User.objects.create_user(username="manager", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=manager, role=TenantRole.MANAGER)
        response = self._post(CardAdjustView, "/x", payload, user=manager, pk=self.card.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["card"]["available_free_drinks"], 1)

    def test_suspended_card_is_not_looked_up(self):
        services.deactivate_card(self.card, status=CardStatus.SUSPENDED)
        self.assertIsNone(services.lookup_card(self.tenant, card_number=self.card.card_number))

    def test_register_does_not_replace_suspended_card(self):
        services.deactivate_card(self.card, status=CardStatus.SUSPENDED)

        response = self._post(CardRegisterView, "/x", {"customer_id": self.customer.pk})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "card_inactive")
        self.assertEqual(LoyaltyCard.objects.filter(customer=self.customer).count(), 1)
