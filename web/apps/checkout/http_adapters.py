"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements the HTTP client for the catalog service using
``httpx`` and the resilience helpers shared with the other downstream
clients of the gateway. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service to avoid hammering unhealthy
    dependencies, with HALF_OPEN probing after a timeout.
- Simple retry policy with exponential backoff for transport errors and 5xx.
"""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import CatalogPort, CatalogProduct, ProductStatus, ShippingPayer, UnavailableItem

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("checkout.http")


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a service whose circuit is open."""


# Failures of a downstream service that callers map to 503.
UPSTREAM_ERRORS = (httpx.HTTPError, CircuitOpenError)

# Longest id the catalog stores; longer ids cannot match any product.
MAX_PRODUCT_ID_LENGTH = 64


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is
                already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                # allow only one concurrent probe
                if self._half_open_probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold exceeded."""
        with self._lock:
            self._failures += 1
            if self._failures >= self.fail_threshold and self._state != "OPEN":
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False
                logger.warning("circuit opened", extra={"service": self.name, "failures": self._failures})

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


def new_breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# Per-service instance
_catalog_cb = new_breaker("catalog")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras.

    Args:
        extra: Optional dict of additional headers to include.

    Returns:
        dict: Final headers dictionary for the outgoing request.
    """
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retries are attempted only on transport exceptions or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def call_with_retry(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    payload: Optional[dict],
    timeout: float,
    business_statuses: Iterable[int] = (200,),
):
    """Send ``payload`` to ``url`` behind ``breaker`` with retries.

    Responses whose status is in ``business_statuses`` are returned to the
    caller and count as a healthy service. Transport errors and 5xx are
    retried with exponential backoff; any other status is raised.

    Returns:
        httpx.Response: The first response with a business status.

    Raises:
        CircuitOpenError: When the breaker refuses the call.
        httpx.RequestError: For network/transport errors after retries.
        httpx.HTTPStatusError: For non-retriable or exhausted non-2xx responses.
    """
    business_statuses = tuple(business_statuses)
    max_retries, backoff = _retry_policy()
    tries = 0

    # CIRCUIT: precheck
    state = breaker.before_call()
    headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.request(method, url, json=payload, headers=headers or None)
                    if resp.status_code in business_statuses:
                        breaker.on_success()
                        return resp
                    if not _should_retry(resp, None):
                        # 4xx does not count as a circuit failure
                        breaker.on_success()
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_retries or not _should_retry(resp, exc):
                    breaker.on_failure()
                    logger.warning(
                        "downstream call failed",
                        extra={"service": breaker.name, "url": url, "tries": tries},
                    )
                    if exc:
                        raise exc
                    resp.raise_for_status()

                sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


def _conflicts(items: List[dict]) -> List[UnavailableItem]:
    return [UnavailableItem(c["productId"], c["reason"]) for c in items or []]


def _product(data: dict) -> CatalogProduct:
    return CatalogProduct(
        id=data["id"],
        title=data.get("title", ""),
        price=int(data["price"]),
        seller_id=data.get("sellerId", ""),
        status=ProductStatus(data.get("status", "available")),
        shipping_payer=ShippingPayer(data.get("shippingPayer", "seller")),
        seller_name=data.get("sellerName", ""),
        category=data.get("category", "other"),
        condition=data.get("condition", "good"),
        image=data.get("image"),
        reserved_by=data.get("reservedBy"),
    )


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the catalog service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _post(self, path: str, payload: dict, business_statuses=(200,)):
        return call_with_retry(_catalog_cb, "POST", f"{self.base_url}{path}", payload, self.timeout, business_statuses)

    def lookup(self, product_ids: List[str]) -> Dict[str, CatalogProduct]:
        """Resolve ids with one ``/products/lookup`` call.

        Ids the catalog could never store are left out of the request and,
        like any unknown id, absent from the result.
        """
        ids = [pid for pid in product_ids if 0 < len(pid) <= MAX_PRODUCT_ID_LENGTH]
        if not ids:
            return {}
        resp = self._post("/products/lookup", {"ids": ids})
        products = [_product(p) for p in resp.json().get("products", [])]
        return {p.id: p for p in products}

    def reserve(self, holder: str, product_ids: List[str], ttl_secs: int) -> List[UnavailableItem]:
        """Reserve all products for ``holder``.

        Business mappings:
        - 200 → no conflicts
        - 409 → conflicts reported by the catalog, not a circuit failure
        """
        resp = self._post(
            "/reserve",
            {"holder": holder, "productIds": list(product_ids), "ttlSeconds": ttl_secs},
            business_statuses=(200, 409),
        )
        if resp.status_code == 409:
            return _conflicts(resp.json().get("conflicts"))
        return []

    def release(self, holder: str, product_ids: List[str]) -> List[str]:
        if not product_ids:
            return []
        resp = self._post("/release", {"holder": holder, "productIds": list(product_ids)})
        return list(resp.json().get("released", []))

    def finalize(self, holder: str, product_ids: List[str]) -> List[UnavailableItem]:
        if not product_ids:
            return []
        resp = self._post("/finalize", {"holder": holder, "productIds": list(product_ids)})
        return _conflicts(resp.json().get("conflicts"))
