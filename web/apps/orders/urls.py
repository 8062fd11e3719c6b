from django.urls import path

from .views import OrdersCollectionView, PaymentWebhookView, RetrieveOrderView

app_name = "orders"

urlpatterns = [
    path("orders", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("orders/<uuid:oid>", RetrieveOrderView.as_view(), name="orders-detail"),
    path("payment/webhook", PaymentWebhookView.as_view(), name="payment-webhook"),
]
