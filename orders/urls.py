# orders/urls.py
from django.urls import path

from .views import OrderByNumberView, OrderDetailView, OrderListCreateView, OrderStatusView

app_name = "orders"

urlpatterns = [
    path("", OrderListCreateView.as_view(), name="order-list"),
    path("<int:pk>", OrderDetailView.as_view(), name="order-detail"),
    path("<int:pk>/status", OrderStatusView.as_view(), name="order-status"),
    path("number/<str:order_number>", OrderByNumberView.as_view(), name="order-by-number"),
]
