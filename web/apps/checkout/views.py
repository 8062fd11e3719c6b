"""HTTP views for the checkout app.

Views stay small: they parse the body with a Pydantic schema, delegate to
the ``CheckoutService`` obtained from ``providers.get_checkout_service()``
and map domain error codes to HTTP statuses.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.exceptions import error_response

from . import providers
from .domain import CheckoutError, UnavailableProducts
from .http_adapters import UPSTREAM_ERRORS
from .schemas import CartRequest

logger = logging.getLogger("checkout.views")

ERROR_STATUS = {
    "empty_cart": status.HTTP_400_BAD_REQUEST,
    "shipping_address_required": status.HTTP_400_BAD_REQUEST,
    "amount_too_low": status.HTTP_400_BAD_REQUEST,
    "unavailable_products": status.HTTP_409_CONFLICT,
    "processor_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def checkout_error_response(e: CheckoutError) -> Response:
    """Map a checkout domain error to its JSON response."""
    code = str(e)
    extra = {}
    if isinstance(e, UnavailableProducts):
        extra["unavailableProducts"] = [item.as_dict() for item in e.items]
    return error_response(code, e.message, ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST), **extra)


def invalid_request_response(e: ValidationError) -> Response:
    fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
    return error_response(
        "invalid_request",
        "The request body is invalid.",
        status.HTTP_400_BAD_REQUEST,
        fields=fields,
    )


def upstream_unavailable_response() -> Response:
    return error_response(
        "upstream_unavailable",
        "A downstream service is unavailable. Please try again.",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class CheckoutSessionView(APIView):
    """Hand the cart off to the processor's hosted checkout page.

    Returns:
        - 200 with ``{sessionId}``.
        - 400 for invalid bodies, empty carts, missing address or too low totals.
        - 409 with ``unavailableProducts`` when items can no longer be bought.
        - 500 when the processor refuses the session.
        - 503 when the catalog cannot be reached.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        try:
            dto = CartRequest.model_validate(request.data)
        except ValidationError as e:
            return invalid_request_response(e)

        origin = request.headers.get("Origin") or request.build_absolute_uri("/")
        buyer_id = request.user.pk if request.user else ""
        try:
            session_id = providers.get_checkout_service().create_checkout_session(
                dto.items, origin, address=dto.address(), buyer_id=buyer_id
            )
        except CheckoutError as e:
            return checkout_error_response(e)
        except UPSTREAM_ERRORS:
            logger.exception("catalog unavailable during checkout")
            return upstream_unavailable_response()

        return Response({"sessionId": session_id}, status=status.HTTP_200_OK)


class CreatePaymentIntentView(APIView):
    """Create a payment intent for the authenticated buyer's cart.

    The amount is always recomputed from the catalog; the products are
    reserved for the buyer until the processor confirms or fails the payment.

    Returns:
        - 200 with ``{clientSecret, amount, paymentIntentId}``.
        - 400 for invalid bodies, empty carts, missing address or too low totals.
        - 401 without a valid bearer token.
        - 409 with ``unavailableProducts``.
        - 500 with ``processor_error`` when the processor refuses the intent.
        - 503 when the catalog cannot be reached.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        try:
            dto = CartRequest.model_validate(request.data)
        except ValidationError as e:
            return invalid_request_response(e)

        try:
            handle = providers.get_checkout_service().create_payment_intent(
                request.user.pk, dto.items, address=dto.address()
            )
        except CheckoutError as e:
            return checkout_error_response(e)
        except UPSTREAM_ERRORS:
            logger.exception("catalog unavailable during intent creation")
            return upstream_unavailable_response()

        return Response(
            {
                "clientSecret": handle.client_secret,
                "amount": handle.amount,
                "paymentIntentId": handle.payment_intent_id,
            },
            status=status.HTTP_200_OK,
        )
