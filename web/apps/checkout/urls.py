from django.urls import path

from .views import CheckoutSessionView, CreatePaymentIntentView

app_name = "checkout"

urlpatterns = [
    path("checkout", CheckoutSessionView.as_view(), name="checkout-session"),
    path("payment/create-intent", CreatePaymentIntentView.as_view(), name="create-intent"),
]
