from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from customers.models import Customer
from discounts.models import DiscountCode
from loyalty import services as loyalty
from loyalty.models import LoyaltyCard
from menu.models import CoffeeItem
from orders.models import Order, OrderStatus
from pos.services.totals import LineIn, compute_quote
from pos.views import POSCheckoutView, POSLookupCardView, POSQuoteView
from tenants.models import Tenant, TenantUser


User = get_user_model()


class POSFixtureMixin:
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
        self.card = loyalty.issue_card(self.customer)
        self.items = [
            {"coffee_item_id": self.latte.id, "quantity": 1},
            {"coffee_item_id": self.espresso.id, "quantity": 3},
        ]

    def _give_free_drinks(self, count):
        loyalty.adjust(self.card.pk, stamps=6 * count, reason="Opening balance")
        self.card.refresh_from_db()

    def _post(self, view, path, payload, **headers):
        request = self.factory.post(path, payload, format="json", **headers)
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        return view.as_view()(request)


class ComputeQuoteTests(POSFixtureMixin, TestCase):
    def _lines(self):
        return [
            LineIn(item_id=self.latte.id, name="Latte", qty=1, unit_price=Decimal("12.00")),
            LineIn(item_id=self.espresso.id, name="Espresso", qty=3, unit_price=Decimal("8.00")),
        ]

    def test_all_available_free_drinks_by_default(self):
        self._give_free_drinks(2)
        quote = compute_quote(tenant=self.tenant, lines_in=self._lines(), card=self.card)

        self.assertEqual(quote.subtotal, Decimal("36.00"))
        self.assertEqual(quote.applied_free_drinks, 2)
        self.assertEqual(quote.free_items, {self.espresso.id: 2})
        self.assertEqual(quote.total, Decimal("20.00"))

    def test_request_above_balance_is_capped(self):
        self._give_free_drinks(1)
        quote = compute_quote(tenant=self.tenant, lines_in=self._lines(), card=self.card, use_free_drinks=3)
        self.assertEqual(quote.applied_free_drinks, 1)
        self.assertTrue(quote.notes)

    def test_guest_pays_full_price(self):
        quote = compute_quote(tenant=self.tenant, lines_in=self._lines(), card=None)
        self.assertEqual(quote.available_free_drinks, 0)
        self.assertEqual(quote.total, Decimal("36.00"))

    def test_code_keeps_free_drinks_for_later(self):
        self._give_free_drinks(1)
        DiscountCode.objects.create(tenant=self.tenant, code="staff10", discount_percentage=10, reason="Staff")

        quote = compute_quote(tenant=self.tenant, lines_in=self._lines(), card=self.card, discount_code="staff10")

        self.assertEqual(quote.applied_free_drinks, 0)
        self.assertEqual(quote.discount_amount, Decimal("3.60"))
        self.assertEqual(quote.total, Decimal("32.40"))

    def test_code_ignored_when_free_drinks_requested(self):
        self._give_free_drinks(1)
        DiscountCode.objects.create(tenant=self.tenant, code="staff10", discount_percentage=10, reason="Staff")

        quote = compute_quote(
            tenant=self.tenant, lines_in=self._lines(), card=self.card, use_free_drinks=1, discount_code="staff10"
        )

        self.assertEqual(quote.applied_free_drinks, 1)
        self.assertIsNone(quote.discount_code)
        self.assertEqual(quote.total, Decimal("28.00"))


class POSViewTests(POSFixtureMixin, TestCase):
    def test_lookup_unknown_phone_is_guest(self):
        request = self.factory.get("/api/v1/pos/lookup-card", {"phone": "+966599999999"})
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = POSLookupCardView.as_view()(request)

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["card"])
        self.assertEqual(response.data["available_free_drinks"], 0)

    def test_quote_by_qr_token(self):
        self._give_free_drinks(2)
        response = self._post(POSQuoteView, "/api/v1/pos/quote", {"items": self.items, "qr_token": self.card.qr_token})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["quote"]["total"], "20.00")
        self.assertEqual(response.data["quote"]["free_items"], {str(self.espresso.id): 2})

    def test_quote_unknown_item(self):
        response = self._post(POSQuoteView, "/api/v1/pos/quote", {"items": [{"coffee_item_id": 999, "quantity": 1}]})
        self.assertEqual(response.status_code, 400)

    def test_checkout_redeems_and_completes(self):
        self._give_free_drinks(2)
        payload = {
            "items": self.items,
            "card_id": self.card.pk,
            "payment_method": "cash",
            "total_amount": "20.00",
            "complete": True,
        }

        response = self._post(POSCheckoutView, "/api/v1/pos/checkout", payload)

        self.assertEqual(response.status_code, 201)
        order = Order.objects.get()
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.used_free_drinks, 2)
        self.assertTrue(response.data["receipt"]["qr_png_data_url"].startswith("data:image/png;base64,"))

        card = LoyaltyCard.objects.get(pk=self.card.pk)
        self.assertEqual(card.free_cups_redeemed, 2)
        # 12 opening stamps + 4 cups from this order
        self.assertEqual(card.stamps, 16)
        self.assertEqual(loyalty.compute_available_free_drinks(card), 0)

    def test_checkout_replay_returns_same_order(self):
        payload = {"items": self.items, "payment_method": "card"}
        first = self._post(POSCheckoutView, "/api/v1/pos/checkout", payload, HTTP_IDEMPOTENCY_KEY="OFF-1")
        second = self._post(POSCheckoutView, "/api/v1/pos/checkout", payload, HTTP_IDEMPOTENCY_KEY="OFF-1")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(Order.objects.count(), 1)

    def test_checkout_replay_survives_menu_and_code_changes(self):
        code = DiscountCode.objects.create(tenant=self.tenant, code="staff10", discount_percentage=10, reason="Staff")
        payload = {"items": self.items, "payment_method": "cash", "discount_code": "staff10"}
        first = self._post(POSCheckoutView, "/api/v1/pos/checkout", payload, HTTP_IDEMPOTENCY_KEY="OFF-9")

        code.is_active = False
        code.save(update_fields=["is_active"])
        self.latte.is_available = False
        self.latte.save(update_fields=["is_available"])
        second = self._post(POSCheckoutView, "/api/v1/pos/checkout", payload, HTTP_IDEMPOTENCY_KEY="OFF-9")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["order"]["order_number"], first.data["order"]["order_number"])
        self.assertEqual(second.data["receipt"]["quote"]["total"], "32.40")
        self.assertEqual(Order.objects.count(), 1)
        code.refresh_from_db()
        self.assertEqual(code.usage_count, 1)

    def test_checkout_rejects_unknown_payment_method(self):
        response = self._post(POSCheckoutView, "/api/v1/pos/checkout", {"items": self.items, "payment_method": "iou"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())
