from django.urls import path
from .views import InitializeOrderView, OrdersPingView, PaymentDetailView
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("initialize/", InitializeOrderView.as_view(), name="orders-initialize"),
    path("payments/<str:payment_id>/", PaymentDetailView.as_view(), name="payments-detail"),
]
