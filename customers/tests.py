from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from customers.models import Customer, normalize_phone
from customers.services import find_customer_by_phone, get_or_create_customer
from customers.views import CustomerListCreateView
from tenants.models import Tenant, TenantUser


User = get_user_model()


class CustomerTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.tenant = Tenant.objects.create(name="Qahwa", code="qahwa")
        self.user = User.objects.create_user(username="cashier", password="pass")
        TenantUser.objects.create(tenant=self.tenant, user=self.user)

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone("+966 (50) 123-4567"), "+966501234567")
        self.assertEqual(normalize_phone(None), "")

    def test_get_or_create_by_phone(self):
        first, created = get_or_create_customer(self.tenant, "+966 50 123 4567", "Sara")
        again, created_again = get_or_create_customer(self.tenant, "+966501234567")

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.pk, again.pk)
        self.assertEqual(find_customer_by_phone(self.tenant, "+966-50-123-4567").pk, first.pk)

    def test_phone_is_unique_per_tenant(self):
        Customer.objects.create(tenant=self.tenant, name="Sara", phone_number="+966501234567")

        request = self.factory.post(
            "/api/v1/customers/", {"name": "Sara 2", "phone_number": "+966 50 123 4567"}, format="json"
        )
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = CustomerListCreateView.as_view()(request)

        self.assertEqual(response.status_code, 400)
        self.assertIn("phone_number", response.data)

    def test_create_stores_normalized_phone(self):
        request = self.factory.post(
            "/api/v1/customers/", {"name": "Noura", "phone_number": "+966 55 000 1111"}, format="json"
        )
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        response = CustomerListCreateView.as_view()(request)

        self.assertEqual(response.status_code, 201)
        customer = Customer.objects.get()
        self.assertEqual(customer.phone_number, "+966550001111")
        self.assertEqual(customer.total_spend, Decimal("0.00"))
