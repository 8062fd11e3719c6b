"""HTTP clients for the user directory and notification services.

Both reuse the retry and circuit-breaker plumbing of the catalog client, with
one breaker per service.
"""

from typing import Optional

from django.conf import settings

from apps.checkout.http_adapters import call_with_retry, new_breaker

from .directory import UserDirectoryPort
from .notifications import NotifierPort

_directory_cb = new_breaker("user-directory")
_notifications_cb = new_breaker("notifications")


class HttpUserDirectory(UserDirectoryPort):
    """Reads ``GET /users/{id}``; a 404 means the user is unknown."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.USER_DIRECTORY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def display_name(self, user_id: str) -> Optional[str]:
        resp = call_with_retry(
            _directory_cb, "GET", f"{self.base_url}/users/{user_id}", None, self.timeout,
            business_statuses=(200, 404),
        )
        if resp.status_code == 404:
            return None
        data = resp.json()
        return data.get("displayName") or data.get("username") or None


class HttpNotifier(NotifierPort):
    """Posts to ``/users/{id}/notifications``."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.NOTIFICATIONS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def send(self, recipient_id: str, notification: dict) -> None:
        call_with_retry(
            _notifications_cb, "POST", f"{self.base_url}/users/{recipient_id}/notifications",
            notification, self.timeout, business_statuses=(200, 201, 202),
        )
