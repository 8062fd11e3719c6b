"""Service provider helpers for wiring CheckoutService with ports.

When ``settings.USE_HTTP_ADAPTERS`` is truthy the catalog is reached through
``HttpCatalogClient`` and payments go to Stripe. Otherwise the shared
in-process stubs from ``adapters`` are used, which is what tests and local
development rely on.
"""

from django.conf import settings

from . import adapters
from .domain import CatalogPort, PaymentProcessorPort
from .http_adapters import HttpCatalogClient
from .service import CheckoutService
from .stripe_adapter import StripeProcessor


def get_catalog() -> CatalogPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpCatalogClient()
    return adapters.catalog_stub


def get_processor() -> PaymentProcessorPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return StripeProcessor()
    return adapters.processor_stub


def get_checkout_service() -> CheckoutService:
    """Return a CheckoutService configured from settings."""
    return CheckoutService(
        catalog=get_catalog(),
        processor=get_processor(),
        currency=settings.CHECKOUT_CURRENCY,
        min_charge_amount=settings.MIN_CHARGE_AMOUNT,
        reservation_ttl=settings.RESERVATION_TTL_SECS,
    )
