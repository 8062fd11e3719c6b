"""Client-confirmed order creation.

After the processor reports a successful payment to the storefront, the
buyer's client posts the order. The order is re-priced from the catalog,
gated against availability, stored with item snapshots and, once the
transaction commits, marked sold in the catalog and announced to the
sellers.
"""

import logging
from functools import partial

from django.db import transaction

from apps.checkout.http_adapters import UPSTREAM_ERRORS
from apps.checkout.service import CheckoutService

from .directory import DisplayNames
from .domain import Forbidden, Order, OrderDraft, OrderItem, OrderStatus, PaymentStatus
from .notifications import NotifierPort, notify_sellers
from .repository import OrderRepository
from .schemas import CreateOrderDTO

logger = logging.getLogger("orders.service")


class OrderCreationService:
    """Create orders for the authenticated buyer.

    Args:
        checkout: Provides catalog pricing and the availability gate.
        repository: Order store.
        display_names: Resolves the buyer name used in notifications.
        notifier: Delivers sale notifications to sellers.
    """

    def __init__(
        self,
        checkout: CheckoutService,
        repository: OrderRepository,
        display_names: DisplayNames,
        notifier: NotifierPort,
    ):
        self.checkout = checkout
        self.repository = repository
        self.display_names = display_names
        self.notifier = notifier

    def create(self, caller_id: str, dto: CreateOrderDTO) -> Order:
        """Create an order from a validated request body.

        Args:
            caller_id: Authenticated user id.
            dto: Parsed order body.

        Returns:
            Order: The stored order (payment completed, order confirmed).

        Raises:
            Forbidden: ``buyerId`` is not the caller.
            EmptyCart, ShippingAddressRequired, AmountTooLow: From pricing.
            UnavailableProducts: A product was sold to someone else or is
                held by another buyer.
            DuplicateOrder: An order already exists for the payment intent.
        """
        if dto.buyer_id != caller_id:
            logger.warning("buyer mismatch", extra={"caller_id": caller_id, "buyer_id": dto.buyer_id})
            raise Forbidden()

        address = dto.shipping_address.to_domain() if dto.shipping_address else None
        priced = self.checkout.validate_and_price(dto.items, address)
        self.checkout.check_availability(priced, holder=caller_id, accept_sold_to_holder=True)

        if dto.total_amount is not None and dto.total_amount != priced.total:
            logger.warning(
                "client total differs from catalog total",
                extra={
                    "buyer_id": caller_id,
                    "client_total": dto.total_amount,
                    "server_total": priced.total,
                    "payment_intent_id": dto.payment_intent_id,
                },
            )

        items = []
        for line in priced.lines:
            product = priced.products[line.product_id]
            items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.title,
                    price=product.price,
                    quantity=line.quantity,
                    seller_id=product.seller_id,
                    seller_name=product.seller_name,
                    product_image=product.image,
                    category=product.category,
                    condition=product.condition,
                )
            )

        draft = OrderDraft(
            buyer_id=caller_id,
            buyer_name=dto.buyer_name,
            items=items,
            subtotal=priced.subtotal,
            shipping_fee=priced.shipping_fee,
            total_amount=priced.total,
            payment_method=dto.payment_method,
            payment_intent_id=dto.payment_intent_id,
            shipping_address=dto.shipping_address.as_record() if dto.shipping_address else None,
            payment_status=PaymentStatus.COMPLETED,
            order_status=OrderStatus.CONFIRMED,
        )

        with transaction.atomic():
            order = self.repository.create(draft)
            transaction.on_commit(partial(self._after_commit, order, dto.buyer_name))

        logger.info(
            "order created",
            extra={
                "order_id": order.id,
                "buyer_id": caller_id,
                "payment_intent_id": order.payment_intent_id,
                "total_amount": order.total_amount,
            },
        )
        return order

    def _after_commit(self, order: Order, fallback_name: str):
        self._mark_sold(order)
        buyer_name = self.display_names.resolve(order.buyer_id, fallback=fallback_name)
        sent = notify_sellers(self.notifier, order, buyer_name)
        logger.info("sellers notified", extra={"order_id": order.id, "sent": sent})

    def _mark_sold(self, order: Order):
        """Finalise the buyer's reservation so it cannot lapse.

        The success webhook does the same; finalising twice for the same
        buyer is a no-op. A catalog outage leaves the sale to the webhook.
        """
        product_ids = [item.product_id for item in order.items]
        try:
            conflicts = self.checkout.catalog.finalize(order.buyer_id, product_ids)
        except UPSTREAM_ERRORS:
            logger.warning(
                "catalog unavailable, sale left to the payment webhook",
                extra={"order_id": order.id, "product_ids": product_ids},
                exc_info=True,
            )
            return
        if conflicts:
            logger.error(
                "ordered products could not be marked sold",
                extra={"order_id": order.id, "conflicts": [c.as_dict() for c in conflicts]},
            )
