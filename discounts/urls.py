# discounts/urls.py
from django.urls import path

from .views import DiscountCodeListCreateView, DiscountCodeValidateView

app_name = "discounts"

urlpatterns = [
    path("codes", DiscountCodeListCreateView.as_view(), name="codes"),
    path("codes/validate", DiscountCodeValidateView.as_view(), name="codes-validate"),
]
