"""In-process stub adapters for the checkout ports.

These stubs implement ``CatalogPort`` and ``PaymentProcessorPort`` without any
network calls. They back unit tests and local development where the catalog
service and the payment processor are not available.
"""

import itertools
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional

from .domain import (
    CatalogPort,
    CatalogProduct,
    IntentHandle,
    PaymentProcessorPort,
    ProcessorError,
    ProductStatus,
    SessionLine,
    ShippingAddress,
    UnavailableItem,
    UnavailableReason,
)


class CatalogStub(CatalogPort):
    """Dict-backed catalog with the same reservation rules as the service.

    Expired reservations read as available. Reservations are all or nothing.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._products: Dict[str, CatalogProduct] = {}
        self._deadlines: Dict[str, float] = {}
        self.lookups = 0

    def put(self, product: CatalogProduct) -> CatalogProduct:
        with self._lock:
            self._products[product.id] = product
            self._deadlines.pop(product.id, None)
        return product

    def clear(self):
        with self._lock:
            self._products.clear()
            self._deadlines.clear()
            self.lookups = 0

    def _current(self, pid: str) -> Optional[CatalogProduct]:
        product = self._products.get(pid)
        if product is None:
            return None
        deadline = self._deadlines.get(pid)
        if product.status == ProductStatus.RESERVED and deadline is not None and deadline <= time.time():
            product = replace(product, status=ProductStatus.AVAILABLE, reserved_by=None)
            self._products[pid] = product
            self._deadlines.pop(pid, None)
        return product

    def lookup(self, product_ids: List[str]) -> Dict[str, CatalogProduct]:
        with self._lock:
            self.lookups += 1
            found = {}
            for pid in product_ids:
                product = self._current(pid)
                if product is not None:
                    found[pid] = product
            return found

    def reserve(self, holder: str, product_ids: List[str], ttl_secs: int) -> List[UnavailableItem]:
        with self._lock:
            conflicts = []
            for pid in product_ids:
                product = self._current(pid)
                if product is None:
                    conflicts.append(UnavailableItem(pid, UnavailableReason.NOT_FOUND.value))
                elif product.status == ProductStatus.SOLD:
                    conflicts.append(UnavailableItem(pid, UnavailableReason.SOLD.value))
                elif product.status == ProductStatus.RESERVED and product.reserved_by != holder:
                    conflicts.append(UnavailableItem(pid, UnavailableReason.RESERVED.value))
            if conflicts:
                return conflicts
            deadline = time.time() + ttl_secs
            for pid in product_ids:
                self._products[pid] = replace(self._products[pid], status=ProductStatus.RESERVED, reserved_by=holder)
                self._deadlines[pid] = deadline
            return []

    def release(self, holder: str, product_ids: List[str]) -> List[str]:
        with self._lock:
            released = []
            for pid in product_ids:
                product = self._current(pid)
                if product is None or product.status != ProductStatus.RESERVED:
                    continue
                if holder and product.reserved_by != holder:
                    continue
                self._products[pid] = replace(product, status=ProductStatus.AVAILABLE, reserved_by=None)
                self._deadlines.pop(pid, None)
                released.append(pid)
            return released

    def finalize(self, holder: str, product_ids: List[str]) -> List[UnavailableItem]:
        with self._lock:
            conflicts = []
            for pid in product_ids:
                product = self._current(pid)
                if product is None:
                    conflicts.append(UnavailableItem(pid, UnavailableReason.NOT_FOUND.value))
                    continue
                if product.status == ProductStatus.SOLD:
                    if not (holder and product.reserved_by == holder):
                        conflicts.append(UnavailableItem(pid, UnavailableReason.SOLD.value))
                    continue
                if product.status == ProductStatus.RESERVED and product.reserved_by != holder:
                    conflicts.append(UnavailableItem(pid, UnavailableReason.RESERVED.value))
                    continue
                self._products[pid] = replace(product, status=ProductStatus.SOLD, reserved_by=holder or None)
                self._deadlines.pop(pid, None)
            return conflicts


class ProcessorStub(PaymentProcessorPort):
    """Records intents and sessions and returns deterministic handles.

    Set ``fail_with`` to a message to make the next calls raise
    ``ProcessorError``.
    """

    def __init__(self):
        self._seq = itertools.count(1)
        self.intents: List[dict] = []
        self.sessions: List[dict] = []
        self.fail_with: Optional[str] = None

    def clear(self):
        self.intents.clear()
        self.sessions.clear()
        self.fail_with = None

    def create_intent(
        self,
        amount: int,
        currency: str,
        *,
        description: str,
        metadata: Dict[str, str],
        shipping: Optional[ShippingAddress] = None,
    ) -> IntentHandle:
        if self.fail_with:
            raise ProcessorError(self.fail_with)
        n = next(self._seq)
        intent_id = f"pi_stub_{n}"
        self.intents.append(
            {
                "id": intent_id,
                "amount": amount,
                "currency": currency,
                "description": description,
                "metadata": dict(metadata),
                "shipping": shipping,
            }
        )
        return IntentHandle(client_secret=f"{intent_id}_secret_{n}", payment_intent_id=intent_id, amount=amount)

    def create_checkout_session(
        self,
        lines: List[SessionLine],
        currency: str,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        if self.fail_with:
            raise ProcessorError(self.fail_with)
        session_id = f"cs_stub_{next(self._seq)}"
        self.sessions.append(
            {
                "id": session_id,
                "lines": list(lines),
                "currency": currency,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": dict(metadata),
            }
        )
        return session_id


# Shared instances handed out by the providers when HTTP adapters are off.
catalog_stub = CatalogStub()
processor_stub = ProcessorStub()
