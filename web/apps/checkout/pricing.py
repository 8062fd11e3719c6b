"""Cart normalisation and server-side pricing.

Prices always come from the catalog. Whatever price, title or total the
client sends along with its cart is ignored here.
"""

import logging
from typing import Any, Iterable, List, Optional

from .domain import (
    AmountTooLow,
    CartLine,
    CatalogPort,
    EmptyCart,
    PricedCart,
    ShippingAddress,
    ShippingAddressRequired,
    ShippingPayer,
)
from .shipping import shipping_fee

logger = logging.getLogger("checkout.pricing")

MAX_LINE_QUANTITY = 99


def _product_id(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        value = raw.get("productId") or raw.get("product_id") or raw.get("id")
    else:
        value = getattr(raw, "product_id", None)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _quantity(raw: Any) -> int:
    value = raw.get("quantity") if isinstance(raw, dict) else getattr(raw, "quantity", None)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return 1
    return value


def normalize_items(raw_items: Iterable[Any]) -> List[CartLine]:
    """Turn raw cart entries into clean, deduplicated cart lines.

    - entries without a usable product id are dropped;
    - a missing or non-positive quantity becomes 1;
    - repeated product ids are merged, keeping the first position;
    - quantities are clamped to ``MAX_LINE_QUANTITY``.

    Args:
        raw_items: Dicts (``productId``/``id`` and ``quantity``) or objects
            exposing ``product_id`` and ``quantity``.

    Returns:
        List[CartLine]: Normalised lines in first-seen order.
    """
    merged: dict[str, int] = {}
    for raw in raw_items or []:
        pid = _product_id(raw)
        if pid is None:
            continue
        merged[pid] = merged.get(pid, 0) + _quantity(raw)
    return [CartLine(pid, min(qty, MAX_LINE_QUANTITY)) for pid, qty in merged.items()]


class PricingEngine:
    """Validates a cart and prices it from catalog truth.

    The engine performs exactly one catalog read per call and has no other
    side effects.
    """

    def __init__(self, catalog: CatalogPort, min_charge_amount: int):
        self.catalog = catalog
        self.min_charge_amount = min_charge_amount

    def validate_and_price(
        self,
        raw_items: Iterable[Any],
        address: Optional[ShippingAddress] = None,
    ) -> PricedCart:
        """Normalise, price and validate a cart.

        Args:
            raw_items: Cart entries as received from the client.
            address: Destination, if the buyer supplied one.

        Returns:
            PricedCart: Lines, resolved products, subtotal and shipping fee.

        Raises:
            EmptyCart: No entry survived normalisation.
            ShippingAddressRequired: Buyer-paid shipping applies but no
                prefecture was given.
            AmountTooLow: The total is below the processor minimum.
        """
        lines = normalize_items(raw_items)
        if not lines:
            raise EmptyCart()

        products = self.catalog.lookup([line.product_id for line in lines])

        subtotal = 0
        requires_buyer_shipping = False
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                # left for the availability gate to report as not_found
                continue
            subtotal += product.price * line.quantity
            if product.shipping_payer == ShippingPayer.BUYER:
                requires_buyer_shipping = True

        region = address.region if address else None
        if requires_buyer_shipping and region is None:
            raise ShippingAddressRequired()

        fee = shipping_fee(region, requires_buyer_shipping)
        priced = PricedCart(
            lines=lines,
            products=products,
            subtotal=subtotal,
            shipping_fee=fee,
            requires_buyer_shipping=requires_buyer_shipping,
            address=address,
        )
        if priced.total < self.min_charge_amount:
            logger.info("cart total below minimum", extra={"total": priced.total, "minimum": self.min_charge_amount})
            raise AmountTooLow()
        return priced
