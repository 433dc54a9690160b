from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from menu.models import CoffeeItem
from tenants.models import Tenant, TenantUser


User = get_user_model()


class TenantAuthFlowTests(TestCase):
    """Token issue plus TenantContextMiddleware, end to end."""

    def setUp(self):
        self.client = APIClient()
        self.tenant = Tenant.objects.create(name="Qahwa", code="qahwa")
        self.other = Tenant.objects.create(name="Other", code="other")
        self.user = User.objects.create_user(username="cashier", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=self.user)
        CoffeeItem.objects.create(tenant=self.tenant, code="latte", name="Latte", price=Decimal("12.00"))
        CoffeeItem.objects.create(tenant=self.other, code="mocha", name="Mocha", price=Decimal("14.00"))

    def _token(self, **extra):
        payload = {"username": "cashier", "password": "pass"}
        payload.update(extra)
        return self.client.post("/api/v1/auth/token/", payload, format="json")

    def test_token_carries_tenant(self):
        response = self._token()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["tenant"]["code"], "qahwa")
        self.assertEqual(response.data["role"], "cashier")

    def test_token_for_foreign_tenant_is_refused(self):
        response = self._token(tenant_code="other")
        self.assertEqual(response.status_code, 401)

    def test_api_requires_token(self):
        response = self.client.get("/api/v1/menu/items")
        self.assertEqual(response.status_code, 401)

    def test_requests_are_scoped_to_token_tenant(self):
        access = self._token().data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

        response = self.client.get("/api/v1/menu/items")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["code"] for row in response.json()], ["latte"])

    def test_health_is_public(self):
        response = self.client.get("/api/v1/health/")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])
