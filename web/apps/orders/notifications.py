"""Sale notifications sent to sellers once an order is stored.

Notifications are a side effect of a committed order and never fail it:
delivery errors are logged and dropped.
"""

import logging
from typing import List, Protocol

from .domain import Order

logger = logging.getLogger("orders.notifications")


class NotifierPort(Protocol):
    def send(self, recipient_id: str, notification: dict) -> None:
        raise NotImplementedError()


def sale_notifications(order: Order, buyer_display_name: str) -> List[tuple]:
    """Build one ``(seller_id, notification)`` pair per purchased item."""
    out = []
    for item in order.items:
        if not item.seller_id:
            logger.warning("item without seller", extra={"order_id": order.id, "product_id": item.product_id})
            continue
        out.append(
            (
                item.seller_id,
                {
                    "type": "sale",
                    "title": f"{buyer_display_name} purchased your item",
                    "description": f'"{item.product_name}" was purchased. Check the buyer details and prepare shipping.',
                    "link": f"/product-detail/{item.product_id}",
                    "buyerProfileLink": f"/profile/{order.buyer_id}",
                    "actorUserId": order.buyer_id,
                    "actorDisplayName": buyer_display_name,
                    "orderId": order.id,
                },
            )
        )
    return out


def notify_sellers(notifier: NotifierPort, order: Order, buyer_display_name: str) -> int:
    """Send sale notifications; return how many were delivered."""
    sent = 0
    for seller_id, notification in sale_notifications(order, buyer_display_name):
        try:
            notifier.send(seller_id, notification)
            sent += 1
        except Exception:
            logger.warning(
                "seller notification failed",
                extra={"order_id": order.id, "seller_id": seller_id},
                exc_info=True,
            )
    return sent
