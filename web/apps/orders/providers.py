"""Service provider helpers for wiring the order services with ports.

HTTP collaborators are used when ``settings.USE_HTTP_ADAPTERS`` is truthy
and the service has a base URL configured; otherwise the in-process stubs
from ``adapters`` are returned.
"""

from django.conf import settings

from apps.checkout import providers as checkout_providers

from . import adapters
from .directory import DisplayNames, DjangoDisplayNameCache, UserDirectoryPort
from .http_adapters import HttpNotifier, HttpUserDirectory
from .notifications import NotifierPort
from .reconciler import WebhookReconciler
from .repository import OrderRepository
from .service import OrderCreationService


def _use_http(base_url_setting: str) -> bool:
    return bool(getattr(settings, "USE_HTTP_ADAPTERS", True) and getattr(settings, base_url_setting, ""))


def get_user_directory() -> UserDirectoryPort:
    if _use_http("USER_DIRECTORY_BASE_URL"):
        return HttpUserDirectory()
    return adapters.user_directory_stub


def get_notifier() -> NotifierPort:
    if _use_http("NOTIFICATIONS_BASE_URL"):
        return HttpNotifier()
    return adapters.notifier_stub


def get_display_names() -> DisplayNames:
    return DisplayNames(
        directory=get_user_directory(),
        cache=DjangoDisplayNameCache(),
        ttl=settings.DISPLAY_NAME_CACHE_TTL,
    )


def get_order_creation_service() -> OrderCreationService:
    return OrderCreationService(
        checkout=checkout_providers.get_checkout_service(),
        repository=OrderRepository(),
        display_names=get_display_names(),
        notifier=get_notifier(),
    )


def get_webhook_reconciler() -> WebhookReconciler:
    return WebhookReconciler(repository=OrderRepository(), catalog=checkout_providers.get_catalog())
