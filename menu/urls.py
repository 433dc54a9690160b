# menu/urls.py
from django.urls import path

from .views import CoffeeItemListView

app_name = "menu"

urlpatterns = [
    path("items", CoffeeItemListView.as_view(), name="items"),
]
