"""Pydantic schemas for orders.

``CreateOrderDTO`` validates the client-confirmed order body. Amounts and
item details sent by the client are accepted for comparison only; the stored
order is priced and snapshotted from the catalog. ``OrderReadDTO`` shapes
orders for the read endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from apps.checkout.schemas import ShippingAddressIn

from .domain import Order, PaymentMethod

# the storefront reports Apple Pay as "applepay"
PAYMENT_METHOD_ALIASES = {"applepay": "apple_pay", "googlepay": "google_pay"}


class OrderItemIn(BaseModel):
    """Input schema for a single order line.

    Attributes:
        product_id: Catalog product id.
        quantity: Units purchased (defaults to 1).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1, max_length=64)
    quantity: int = Field(default=1, gt=0)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order after the processor reported success.

    Attributes:
        buyer_id: Must match the authenticated caller.
        items: Purchased lines; at least one.
        total_amount: Client-computed total, compared with the server total.
        payment_method: How the buyer paid.
        payment_intent_id: Processor intent id; one order per intent.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    buyer_id: str = Field(alias="buyerId", min_length=1, max_length=128)
    buyer_name: str = Field(alias="buyerName", default="", max_length=100)
    items: List[OrderItemIn] = Field(min_length=1, max_length=200)
    total_amount: Optional[int] = Field(alias="totalAmount", default=None, ge=0)
    subtotal: Optional[int] = Field(default=None, ge=0)
    shipping_fee: Optional[int] = Field(alias="shippingFee", default=None, ge=0)
    payment_method: PaymentMethod = Field(alias="paymentMethod", default=PaymentMethod.CARD)
    payment_intent_id: Optional[str] = Field(alias="paymentIntentId", default=None, max_length=255)
    shipping_address: Optional[ShippingAddressIn] = Field(alias="shippingAddress", default=None)

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        if isinstance(v, str):
            return PAYMENT_METHOD_ALIASES.get(v.lower(), v.lower())
        return v


class OrderItemOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(serialization_alias="productId")
    product_name: str = Field(serialization_alias="productName")
    product_image: Optional[str] = Field(default=None, serialization_alias="productImage")
    price: int
    quantity: int
    seller_id: str = Field(serialization_alias="sellerId")
    seller_name: str = Field(serialization_alias="sellerName")
    category: str
    condition: str


class OrderReadDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    buyer_id: str = Field(serialization_alias="buyerId")
    buyer_name: str = Field(serialization_alias="buyerName")
    items: List[OrderItemOut]
    subtotal: int
    shipping_fee: int = Field(serialization_alias="shippingFee")
    total_amount: int = Field(serialization_alias="totalAmount")
    payment_method: str = Field(serialization_alias="paymentMethod")
    payment_status: str = Field(serialization_alias="paymentStatus")
    order_status: str = Field(serialization_alias="orderStatus")
    payment_intent_id: Optional[str] = Field(default=None, serialization_alias="paymentIntentId")
    shipping_address: Optional[dict] = Field(default=None, serialization_alias="shippingAddress")
    tracking_number: Optional[str] = Field(default=None, serialization_alias="trackingNumber")
    failure_reason: Optional[str] = Field(default=None, serialization_alias="failureReason")
    paid_at: Optional[datetime] = Field(default=None, serialization_alias="paidAt")
    refunded_at: Optional[datetime] = Field(default=None, serialization_alias="refundedAt")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            buyer_name=order.buyer_name,
            items=[
                OrderItemOut(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    product_image=i.product_image,
                    price=i.price,
                    quantity=i.quantity,
                    seller_id=i.seller_id,
                    seller_name=i.seller_name,
                    category=i.category,
                    condition=i.condition,
                )
                for i in order.items
            ],
            subtotal=order.subtotal,
            shipping_fee=order.shipping_fee,
            total_amount=order.total_amount,
            payment_method=order.payment_method.value,
            payment_status=order.payment_status.value,
            order_status=order.order_status.value,
            payment_intent_id=order.payment_intent_id,
            shipping_address=order.shipping_address,
            tracking_number=order.tracking_number,
            failure_reason=order.failure_reason,
            paid_at=order.paid_at,
            refunded_at=order.refunded_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def as_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
