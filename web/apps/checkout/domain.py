"""Domain types, errors, ports and the availability gate for checkout.

This module contains the immutable value types that flow through checkout
(cart lines, catalog snapshots, priced carts), the error taxonomy raised by the
checkout steps, protocol definitions (ports) for the product catalog and the
payment processor, and the inventory availability gate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol


# ---- Enums ----
class ProductStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"


class ShippingPayer(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"


class UnavailableReason(str, Enum):
    SOLD = "sold"
    RESERVED = "reserved"
    NOT_FOUND = "not_found"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class CartLine:
    """A normalised cart line: one product and a positive quantity."""

    product_id: str
    quantity: int


@dataclass(frozen=True)
class CatalogProduct:
    """Authoritative catalog state for one product, as read at checkout.

    Attributes:
        reserved_by: Buyer id holding the product when ``status`` is
            reserved, or the buyer it was sold to when ``status`` is sold;
            None otherwise.
    """

    id: str
    title: str
    price: int
    seller_id: str
    status: ProductStatus = ProductStatus.AVAILABLE
    shipping_payer: ShippingPayer = ShippingPayer.SELLER
    seller_name: str = ""
    category: str = "other"
    condition: str = "good"
    image: Optional[str] = None
    reserved_by: Optional[str] = None


@dataclass(frozen=True)
class ShippingAddress:
    """Structured destination. ``prefecture`` is the fee region."""

    prefecture: str = ""
    city: str = ""
    line1: str = ""
    line2: Optional[str] = None
    postal_code: str = ""
    name: str = ""

    @property
    def region(self) -> Optional[str]:
        return self.prefecture.strip() or None


@dataclass
class PricedCart:
    """Output of the pricing engine.

    ``products`` holds the catalog records resolved for the lines; a line
    whose product the catalog does not know has no entry and contributes
    nothing to ``subtotal``.
    """

    lines: List[CartLine]
    products: Dict[str, CatalogProduct]
    subtotal: int
    shipping_fee: int
    requires_buyer_shipping: bool
    address: Optional[ShippingAddress] = None

    @property
    def total(self) -> int:
        return self.subtotal + self.shipping_fee

    @property
    def product_ids(self) -> List[str]:
        return [line.product_id for line in self.lines]

    @property
    def item_count(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class UnavailableItem:
    product_id: str
    reason: str

    def as_dict(self) -> dict:
        return {"productId": self.product_id, "reason": self.reason}


@dataclass(frozen=True)
class IntentHandle:
    """What the client needs to finish paying, plus the reconciliation key."""

    client_secret: str
    payment_intent_id: str
    amount: int


@dataclass(frozen=True)
class SessionLine:
    name: str
    unit_amount: int
    quantity: int
    image: Optional[str] = None


# ---- Errors ----
class CheckoutError(ValueError):
    """Base class for checkout failures.

    ``str(error)`` is the machine-readable code; ``message`` is the text
    shown to the buyer.
    """

    code = "checkout_error"
    default_message = "Checkout failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(self.code)
        self.message = message or self.default_message


class EmptyCart(CheckoutError):
    code = "empty_cart"
    default_message = "The cart does not contain any valid item."


class ShippingAddressRequired(CheckoutError):
    code = "shipping_address_required"
    default_message = "A shipping address with a prefecture is required for these items."


class AmountTooLow(CheckoutError):
    code = "amount_too_low"
    default_message = "The order total is below the minimum chargeable amount."


class UnavailableProducts(CheckoutError):
    code = "unavailable_products"
    default_message = "Some items can no longer be purchased."

    def __init__(self, items: List[UnavailableItem], message: Optional[str] = None):
        super().__init__(message)
        self.items = list(items)


class ProcessorError(CheckoutError):
    code = "processor_error"
    default_message = "The payment could not be started. Please try again."


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port describing the product catalog operations used by checkout."""

    def lookup(self, product_ids: List[str]) -> Dict[str, CatalogProduct]:
        """Resolve all ids in one round trip; unknown ids are absent."""
        raise NotImplementedError()

    def reserve(self, holder: str, product_ids: List[str], ttl_secs: int) -> List[UnavailableItem]:
        """Hold every product for ``holder`` or none; return the conflicts."""
        raise NotImplementedError()

    def release(self, holder: str, product_ids: List[str]) -> List[str]:
        """Drop ``holder``'s reservations; return the released ids."""
        raise NotImplementedError()

    def finalize(self, holder: str, product_ids: List[str]) -> List[UnavailableItem]:
        """Mark products sold after payment; return products that could not be."""
        raise NotImplementedError()


class PaymentProcessorPort(Protocol):
    """Port describing the payment processor calls made by checkout."""

    def create_intent(
        self,
        amount: int,
        currency: str,
        *,
        description: str,
        metadata: Dict[str, str],
        shipping: Optional[ShippingAddress] = None,
    ) -> IntentHandle:
        """Create a capture intent for ``amount``.

        Raises:
            ProcessorError: When the processor rejects or cannot be reached.
        """
        raise NotImplementedError()

    def create_checkout_session(
        self,
        lines: List[SessionLine],
        currency: str,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        """Create a hosted checkout session and return its id."""
        raise NotImplementedError()


# ---- Inventory availability gate ----
def find_unavailable(
    lines: List[CartLine],
    products: Dict[str, CatalogProduct],
    holder: Optional[str] = None,
    accept_sold_to_holder: bool = False,
) -> List[UnavailableItem]:
    """Return every line whose product cannot be purchased right now.

    The whole cart is inspected so the buyer sees everything that changed,
    not just the first problem. A reservation held by ``holder`` itself does
    not block them; with ``accept_sold_to_holder`` neither does a product
    already sold to ``holder`` (payment confirmed before the order was
    recorded).
    """
    unavailable: List[UnavailableItem] = []
    for line in lines:
        product = products.get(line.product_id)
        owned = bool(holder) and product is not None and product.reserved_by == holder
        if product is None:
            unavailable.append(UnavailableItem(line.product_id, UnavailableReason.NOT_FOUND.value))
        elif product.status == ProductStatus.SOLD:
            if not (accept_sold_to_holder and owned):
                unavailable.append(UnavailableItem(line.product_id, UnavailableReason.SOLD.value))
        elif product.status == ProductStatus.RESERVED and not owned:
            unavailable.append(UnavailableItem(line.product_id, UnavailableReason.RESERVED.value))
    return unavailable
