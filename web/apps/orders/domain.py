"""Domain models, errors and status rules for orders.

An order is written once, when the buyer's client confirms a successful
payment, and is afterwards only moved through its payment lifecycle by
processor webhook events. This module holds the order DTOs, the error codes
raised by the order paths, and the transition rules that decide how an event
changes an order.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional


# ---- Enums ----
class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CARD = "card"
    PAYPAY = "paypay"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"
    RAKUTEN = "rakuten"
    AU = "au"


class EventType(str, Enum):
    """Processor events the reconciler acts on."""

    INTENT_SUCCEEDED = "payment_intent.succeeded"
    INTENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"


# Payment statuses only move forward along this ranking.
PAYMENT_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.FAILED: 1,
    PaymentStatus.COMPLETED: 2,
    PaymentStatus.REFUNDED: 3,
}

UNKNOWN_FAILURE = "Unknown error"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class OrderItem:
    """Snapshot of one purchased product, copied from the catalog.

    Later catalog edits never reach an existing order.
    """

    product_id: str
    product_name: str
    price: int
    quantity: int
    seller_id: str
    seller_name: str = ""
    product_image: Optional[str] = None
    category: str = "other"
    condition: str = "good"

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


@dataclass
class OrderDraft:
    """Everything needed to create an order; ids and timestamps come later."""

    buyer_id: str
    items: List[OrderItem]
    subtotal: int
    shipping_fee: int
    total_amount: int
    buyer_name: str = ""
    payment_method: PaymentMethod = PaymentMethod.CARD
    payment_intent_id: Optional[str] = None
    shipping_address: Optional[dict] = None
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    order_status: OrderStatus = OrderStatus.CONFIRMED

    def check_totals(self):
        """Enforce ``total = subtotal + shipping fee`` and ``subtotal = Σ lines``.

        Raises:
            InvalidOrder: When the amounts do not add up.
        """
        if self.total_amount != self.subtotal + self.shipping_fee:
            raise InvalidOrder("Order total must equal subtotal plus shipping fee.")
        if self.subtotal != sum(item.line_total for item in self.items):
            raise InvalidOrder("Order subtotal must equal the sum of its items.")


@dataclass
class Order:
    id: str
    buyer_id: str
    buyer_name: str
    items: List[OrderItem]
    subtotal: int
    shipping_fee: int
    total_amount: int
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    payment_intent_id: Optional[str]
    shipping_address: Optional[dict]
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    tracking_number: Optional[str] = None


@dataclass(frozen=True)
class StatusPatch:
    """Fields a reconciliation step changes. ``None`` means "leave as is"."""

    payment_status: PaymentStatus
    order_status: Optional[OrderStatus] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


# ---- Errors ----
class OrderError(ValueError):
    """Base class for order failures; ``str(error)`` is the code."""

    code = "order_error"
    default_message = "The order could not be processed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(self.code)
        self.message = message or self.default_message


class InvalidOrder(OrderError):
    code = "invalid_order"
    default_message = "The order is invalid."


class Forbidden(OrderError):
    code = "forbidden"
    default_message = "Orders can only be placed for the authenticated buyer."


class DuplicateOrder(OrderError):
    code = "duplicate_order"
    default_message = "An order already exists for this payment."


class InvalidWebhook(OrderError):
    code = "invalid_webhook"
    default_message = "The event could not be verified."


# ---- Transition rules ----
def plan_transition(order: Order, event_type: str, payload: dict, now: datetime) -> Optional[StatusPatch]:
    """Decide how a processor event changes ``order``.

    Payment status never moves backwards: a failure cannot override a
    completed or refunded payment and a success cannot override a refund.
    Re-applying an event keeps the first ``paidAt``/``refundedAt``.

    Args:
        order: Current order state.
        event_type: Processor event type.
        payload: The event's data object.
        now: Time to stamp on the order.

    Returns:
        StatusPatch | None: The change to apply, or None for a stale event
        or an event type that does not affect orders.
    """
    if event_type == EventType.INTENT_SUCCEEDED.value:
        target = PaymentStatus.COMPLETED
        patch = StatusPatch(
            payment_status=target,
            order_status=OrderStatus.CONFIRMED,
            paid_at=order.paid_at or now,
        )
    elif event_type == EventType.INTENT_FAILED.value:
        target = PaymentStatus.FAILED
        error = payload.get("last_payment_error") or {}
        patch = StatusPatch(
            payment_status=target,
            failure_reason=error.get("message") or UNKNOWN_FAILURE,
        )
    elif event_type == EventType.CHARGE_REFUNDED.value:
        target = PaymentStatus.REFUNDED
        patch = StatusPatch(
            payment_status=target,
            order_status=OrderStatus.CANCELLED,
            refunded_at=order.refunded_at or now,
        )
    else:
        return None

    if PAYMENT_RANK[target] < PAYMENT_RANK[order.payment_status]:
        return None
    return patch


def intent_id_of(event_type: str, payload: dict) -> Optional[str]:
    """Return the payment intent an event refers to.

    Charge events carry it in ``payment_intent``; intent events are the
    intent itself.
    """
    if event_type.startswith("charge."):
        value = payload.get("payment_intent")
    else:
        value = payload.get("id")
    if isinstance(value, dict):
        value = value.get("id")
    return value or None
