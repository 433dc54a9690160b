# core/urls.py
from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from common.auth_tokens import TenantAwareTokenObtainPairView
from .views import HealthView


urlpatterns = [
    path("", RedirectView.as_view(url="/admin/", permanent=False)),
    path("admin/", admin.site.urls),

    # Auth
    path("api/v1/auth/token/", TenantAwareTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/v1/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/v1/auth/verify/", TokenVerifyView.as_view(), name="token_verify"),

    # API & docs
    path("api/v1/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/v1/docs/", SpectacularSwaggerView.as_view(url_name="schema")),
    path("api/v1/health/", HealthView.as_view(), name="health"),

    path("api/v1/customers/", include("customers.urls", namespace="customers")),
    path("api/v1/menu/", include("menu.urls", namespace="menu")),
    path("api/v1/discounts/", include("discounts.urls", namespace="discounts")),
    path("api/v1/loyalty/", include("loyalty.urls", namespace="loyalty")),
    path("api/v1/orders/", include("orders.urls", namespace="orders")),
    path("api/v1/pos/", include("pos.urls", namespace="pos")),
]
