"""HTTP views for the orders app.

Views are kept small: they validate requests (via Pydantic), delegate to the
services built by ``providers`` and map error codes to HTTP statuses.

- ``OrdersCollectionView``: the caller's order history (GET) and
  client-confirmed order creation (POST).
- ``RetrieveOrderView``: one of the caller's orders.
- ``PaymentWebhookView``: processor events. It is authenticated by the
  event signature only, computed over the raw request body, so the body is
  read before anything parses it.
"""

import logging

from django.conf import settings
from django.db import DatabaseError
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.checkout.domain import CheckoutError
from apps.checkout.http_adapters import UPSTREAM_ERRORS
from apps.checkout.views import checkout_error_response, invalid_request_response, upstream_unavailable_response
from gateway.exceptions import error_response

from . import providers
from .domain import DuplicateOrder, Forbidden, InvalidOrder, InvalidWebhook
from .reconciler import verify_event
from .repository import OrderRepository
from .schemas import CreateOrderDTO, OrderReadDTO

logger = logging.getLogger("orders.views")

MAX_PAGE_SIZE = 100


class OrdersCollectionView(APIView):
    """List the caller's orders or create one after a successful payment."""

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            page = int(request.GET.get("page", 1))
            page_size = int(request.GET.get("page_size", 20))
        except ValueError:
            return error_response("invalid_request", "page and page_size must be integers.", status.HTTP_400_BAD_REQUEST)
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))

        orders, count, number = OrderRepository().list_for_buyer(request.user.pk, page, page_size)
        return Response(
            {
                "count": count,
                "page": number,
                "page_size": page_size,
                "results": [OrderReadDTO.from_order(o).as_json() for o in orders],
            },
            status=200,
        )

    def post(self, request):
        """Create an order.

        Returns:
            Response: One of the following responses.
            - 201 with ``{orderId}``.
            - 400 for invalid bodies and pricing errors.
            - 401 without a valid bearer token.
            - 403 when ``buyerId`` is not the caller.
            - 409 ``unavailable_products`` or ``duplicate_order``.
            - 503 when the catalog cannot be reached.
        """
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return invalid_request_response(e)

        try:
            order = providers.get_order_creation_service().create(request.user.pk, dto)
        except Forbidden as e:
            return error_response(str(e), e.message, status.HTTP_403_FORBIDDEN)
        except DuplicateOrder as e:
            return error_response(str(e), e.message, status.HTTP_409_CONFLICT)
        except InvalidOrder as e:
            return error_response(str(e), e.message, status.HTTP_400_BAD_REQUEST)
        except CheckoutError as e:
            return checkout_error_response(e)
        except UPSTREAM_ERRORS:
            logger.exception("catalog unavailable during order creation")
            return upstream_unavailable_response()

        return Response({"orderId": order.id}, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = OrderRepository().get(oid)
        # other buyers' orders are reported as missing
        if order is None or order.buyer_id != request.user.pk:
            return error_response("not_found", "Order not found.", status.HTTP_404_NOT_FOUND)
        return Response(OrderReadDTO.from_order(order).as_json(), status=200)


class PaymentWebhookView(APIView):
    """Receive payment processor events.

    Returns:
        - 200 ``{received: true}`` once the event is handled, including
          duplicates, stale events and events without a matching order.
        - 400 when the signature or the event is invalid; nothing is read
          or written in that case.
        - 500 when reconciliation fails, so the processor redelivers.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        payload = request.body
        try:
            event = verify_event(
                payload,
                request.headers.get("Stripe-Signature"),
                settings.STRIPE_WEBHOOK_SECRET,
                settings.STRIPE_WEBHOOK_TOLERANCE,
            )
        except InvalidWebhook as e:
            return error_response(str(e), e.message, status.HTTP_400_BAD_REQUEST)

        try:
            outcome = providers.get_webhook_reconciler().handle(event)
        except (DatabaseError, *UPSTREAM_ERRORS):
            logger.exception("webhook reconciliation failed", extra={"event_id": event.get("id"), "event_type": event["type"]})
            return error_response(
                "reconciliation_failed",
                "The event could not be processed.",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info("webhook handled", extra={"event_id": event.get("id"), "event_type": event["type"], "outcome": outcome})
        return Response({"received": True}, status=status.HTTP_200_OK)
