# pos/urls.py
from django.urls import path

from .views import POSCheckoutView, POSLookupCardView, POSQuoteView

app_name = "pos"

urlpatterns = [
    path("lookup-card", POSLookupCardView.as_view(), name="lookup-card"),
    path("quote", POSQuoteView.as_view(), name="quote"),
    path("checkout", POSCheckoutView.as_view(), name="checkout"),
]
