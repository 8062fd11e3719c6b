from django.urls import include, path

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/", include("apps.checkout.urls")),
    path("api/", include("apps.orders.urls")),
]
