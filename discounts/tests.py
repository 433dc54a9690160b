from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.roles import TenantRole
from discounts.models import DiscountCode
from discounts.services import discount_amount, validate_code
from discounts.views import DiscountCodeListCreateView, DiscountCodeValidateView
from orders.exceptions import InvalidDiscountCode
from tenants.models import Tenant, TenantUser


User = get_user_model()


class DiscountCodeTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.tenant = Tenant.objects.create(name="Qahwa", code="qahwa")
        self.cashier = User.objects.create_user(username="cashier", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=self.cashier)
        self.manager = User.objects.create_user(username="manager", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=self.manager, role=TenantRole.MANAGER)

    def _create(self, user, payload):
        request = self.factory.post("/api/v1/discounts/codes", payload, format="json")
        force_authenticate(request, user=user)
        request.tenant = self.tenant
        return DiscountCodeListCreateView.as_view()(request)

    def test_codes_match_case_insensitively(self):
        DiscountCode.objects.create(tenant=self.tenant, code=" Welcome10 ", discount_percentage=10, reason="Launch")
        self.assertEqual(validate_code(self.tenant, "WELCOME10").code, "welcome10")

    def test_unknown_code(self):
        with self.assertRaises(InvalidDiscountCode):
            validate_code(self.tenant, "nope")

    def test_amount_rounds_to_cents(self):
        self.assertEqual(discount_amount(Decimal("33.33"), 15), Decimal("5.00"))

    def test_only_managers_issue_codes(self):
        payload = {"code": "Friend20", "discount_percentage": 20, "reason": "Barista friend"}
        self.assertEqual(self._create(self.cashier, payload).status_code, 403)

        response = self._create(self.manager, payload)
        self.assertEqual(response.status_code, 201)
        dc = DiscountCode.objects.get()
        self.assertEqual(dc.code, "friend20")
        self.assertEqual(dc.employee, self.manager)

        self.assertEqual(self._create(self.manager, payload).status_code, 400)

    def test_percentage_bounds(self):
        response = self._create(self.manager, {"code": "all", "discount_percentage": 101, "reason": "x"})
        self.assertEqual(response.status_code, 400)

    def test_validate_endpoint(self):
        DiscountCode.objects.create(tenant=self.tenant, code="staff", discount_percentage=30, reason="Staff")
        request = self.factory.get("/api/v1/discounts/codes/validate", {"code": "STAFF"})
        force_authenticate(request, user=self.cashier)
        request.tenant = self.tenant
        response = DiscountCodeValidateView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["discount_percentage"], 30)

        request = self.factory.get("/api/v1/discounts/codes/validate", {"code": "gone"})
        force_authenticate(request, user=self.cashier)
        request.tenant = self.tenant
        response = DiscountCodeValidateView.as_view()(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_discount_code")
