# loyalty/urls.py

from django.urls import path

from .views import (
    CardAdjustView,
    CardDeactivateView,
    CardDetailView,
    CardLookupView,
    CardQRView,
    CardRegisterView,
    CardReissueView,
    CardTransactionsView,
    LoyaltyProgramView,
    RedeemView,
)

app_name = "loyalty"

urlpatterns = [
    path("program", LoyaltyProgramView.as_view(), name="program"),
    path("redeem", RedeemView.as_view(), name="redeem"),
    path("cards", CardRegisterView.as_view(), name="card-register"),
    path("cards/lookup", CardLookupView.as_view(), name="card-lookup"),
    path("cards/<int:pk>", CardDetailView.as_view(), name="card-detail"),
    path("cards/<int:pk>/transactions", CardTransactionsView.as_view(), name="card-transactions"),
    path("cards/<int:pk>/qr", CardQRView.as_view(), name="card-qr"),
    path("cards/<int:pk>/deactivate", CardDeactivateView.as_view(), name="card-deactivate"),
    path("cards/<int:pk>/reissue", CardReissueView.as_view(), name="card-reissue"),
    path("cards/<int:pk>/adjust", CardAdjustView.as_view(), name="card-adjust"),
]
