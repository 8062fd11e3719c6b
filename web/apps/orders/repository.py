"""Repository layer for persisting orders.

This module maps between the ``Order`` domain objects and the Django ORM
models so the reconciler and services never handle ORM types. Orders are
created once and afterwards only change through ``apply_status_update``;
there is no deletion path.
"""

from typing import List, Optional, Tuple

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction

from .domain import (
    DuplicateOrder,
    Order,
    OrderDraft,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StatusPatch,
)
from .models import OrderItemModel, OrderModel


def _to_domain(obj: OrderModel) -> Order:
    items = [
        OrderItem(
            product_id=i.product_id,
            product_name=i.product_name,
            price=i.price,
            quantity=i.quantity,
            seller_id=i.seller_id,
            seller_name=i.seller_name,
            product_image=i.product_image,
            category=i.category,
            condition=i.condition,
        )
        for i in obj.items.all()
    ]
    return Order(
        id=str(obj.id),
        buyer_id=obj.buyer_id,
        buyer_name=obj.buyer_name,
        items=items,
        subtotal=obj.subtotal,
        shipping_fee=obj.shipping_fee,
        total_amount=obj.total_amount,
        payment_method=PaymentMethod(obj.payment_method),
        payment_status=PaymentStatus(obj.payment_status),
        order_status=OrderStatus(obj.order_status),
        payment_intent_id=obj.payment_intent_id,
        shipping_address=obj.shipping_address,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
        paid_at=obj.paid_at,
        refunded_at=obj.refunded_at,
        failure_reason=obj.failure_reason,
        tracking_number=obj.tracking_number,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM."""

    def create(self, draft: OrderDraft) -> Order:
        """Persist a new order with its item snapshots.

        Args:
            draft: Validated order draft.

        Returns:
            Order: The stored order, with id and timestamps.

        Raises:
            InvalidOrder: When the draft totals do not add up.
            DuplicateOrder: When an order already exists for the draft's
                payment intent.
        """
        draft.check_totals()
        try:
            # savepoint: only this block is rolled back on a duplicate
            with transaction.atomic():
                obj = OrderModel.objects.create(
                    buyer_id=draft.buyer_id,
                    buyer_name=draft.buyer_name,
                    subtotal=draft.subtotal,
                    shipping_fee=draft.shipping_fee,
                    total_amount=draft.total_amount,
                    payment_method=draft.payment_method.value,
                    payment_status=draft.payment_status.value,
                    order_status=draft.order_status.value,
                    payment_intent_id=draft.payment_intent_id,
                    shipping_address=draft.shipping_address,
                )
                OrderItemModel.objects.bulk_create(
                    [
                        OrderItemModel(
                            order=obj,
                            position=pos,
                            product_id=item.product_id,
                            product_name=item.product_name,
                            product_image=item.product_image,
                            price=item.price,
                            quantity=item.quantity,
                            seller_id=item.seller_id,
                            seller_name=item.seller_name,
                            category=item.category,
                            condition=item.condition,
                        )
                        for pos, item in enumerate(draft.items)
                    ]
                )
        except IntegrityError:
            if draft.payment_intent_id and OrderModel.objects.filter(
                payment_intent_id=draft.payment_intent_id
            ).exists():
                raise DuplicateOrder()
            raise
        return _to_domain(obj)

    def get(self, order_id) -> Optional[Order]:
        obj = OrderModel.objects.prefetch_related("items").filter(id=order_id).first()
        return _to_domain(obj) if obj else None

    def find_by_payment_intent_id(self, payment_intent_id: str, for_update: bool = False) -> Optional[Order]:
        """Return the order paid with ``payment_intent_id``, or None.

        Args:
            payment_intent_id: Processor intent id.
            for_update: Lock the order row until the surrounding transaction
                ends; reconciliation uses it to serialise concurrent events.
        """
        if not payment_intent_id:
            return None
        qs = OrderModel.objects.filter(payment_intent_id=payment_intent_id)
        if for_update:
            qs = qs.select_for_update()
        obj = qs.first()
        return _to_domain(obj) if obj else None

    def apply_status_update(self, order_id, patch: StatusPatch) -> Order:
        """Apply a reconciliation patch and bump ``updated_at``.

        Raises:
            OrderModel.DoesNotExist: When the order is gone.
        """
        obj = OrderModel.objects.get(id=order_id)
        obj.payment_status = patch.payment_status.value
        fields = ["payment_status", "updated_at"]
        if patch.order_status is not None:
            obj.order_status = patch.order_status.value
            fields.append("order_status")
        if patch.paid_at is not None:
            obj.paid_at = patch.paid_at
            fields.append("paid_at")
        if patch.refunded_at is not None:
            obj.refunded_at = patch.refunded_at
            fields.append("refunded_at")
        if patch.failure_reason is not None:
            obj.failure_reason = patch.failure_reason
            fields.append("failure_reason")
        obj.save(update_fields=fields)
        return _to_domain(obj)

    def list_for_buyer(self, buyer_id: str, page: int = 1, page_size: int = 20) -> Tuple[List[Order], int, int]:
        """Return one page of a buyer's orders, newest first.

        Returns:
            tuple: (orders, total count, effective page number).
        """
        qs = OrderModel.objects.filter(buyer_id=buyer_id).prefetch_related("items").order_by("-created_at")
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)
        return [_to_domain(o) for o in page_obj.object_list], p.count, page_obj.number
