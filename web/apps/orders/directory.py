"""Buyer display names with a short-lived cache.

The user directory is an external collaborator. Names are cached through a
small ``DisplayNameCache`` capability (``get``/``put`` with a TTL) so the
backing store can be swapped: Django's cache framework in the gateway, any
object with the same two methods in tests.
"""

import logging
from typing import Optional, Protocol

from django.core.cache import cache as django_cache

logger = logging.getLogger("orders.directory")

CACHE_PREFIX = "display-name:"


class DisplayNameCache(Protocol):
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError()

    def put(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError()


class DjangoDisplayNameCache(DisplayNameCache):
    """Backed by the configured Django cache (``DummyCache`` disables it)."""

    def __init__(self, backend=None):
        self.backend = backend or django_cache

    def get(self, key: str) -> Optional[str]:
        return self.backend.get(CACHE_PREFIX + key)

    def put(self, key: str, value: str, ttl: int) -> None:
        self.backend.set(CACHE_PREFIX + key, value, ttl)


class UserDirectoryPort(Protocol):
    def display_name(self, user_id: str) -> Optional[str]:
        """Return the user's display name, or None if unknown."""
        raise NotImplementedError()


class DisplayNames:
    """Resolve display names through the cache, then the directory.

    Lookup failures are logged and answered with the caller's fallback;
    they never fail the operation that needed the name.
    """

    def __init__(self, directory: UserDirectoryPort, cache: DisplayNameCache, ttl: int = 300):
        self.directory = directory
        self.cache = cache
        self.ttl = ttl

    def resolve(self, user_id: str, fallback: str = "") -> str:
        cached = self.cache.get(user_id)
        if cached:
            return cached
        try:
            name = self.directory.display_name(user_id)
        except Exception:
            logger.warning("display name lookup failed", extra={"user_id": user_id}, exc_info=True)
            return fallback or user_id
        if not name:
            return fallback or user_id
        self.cache.put(user_id, name, self.ttl)
        return name
