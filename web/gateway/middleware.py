"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` gives every incoming HTTP request an identifier. The
value is read from the ``X-Request-Id`` header when the caller (or the payment
processor's delivery infrastructure) supplies one, or generated server-side
otherwise. The id is stored on the request and in a context variable so log
records and outgoing calls to downstream services can carry it without
passing it explicitly.

Behavior contract:
- If the incoming request contains the ``X-Request-Id`` header, that value
  is reused as the request id.
- Otherwise a new UUIDv4 is generated.
- The response will include the same id in the ``X-Request-ID`` header.
- The context variable is reset once the response is produced, so a worker
  thread never leaks one request's id into the next.

``ApiSizeLimitMiddleware`` rejects oversized bodies on ``/api/`` routes before
any view parses them.
"""

import uuid
import os
import contextvars
from django.http import JsonResponse

from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(256 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Attach the request id to the request and the context variable.

        Args:
            request: Django HttpRequest instance.
        """
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Echo the request id on the response and clear the context variable.

        Args:
            request: Django HttpRequest (may lack the id if an earlier
                middleware short-circuited).
            response: Django HttpResponse to modify.

        Returns:
            The same HttpResponse with the ``X-Request-ID`` header set.
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject ``/api/`` requests whose declared body exceeds ``API_MAX_BYTES``."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse(
                    {"error": "payload_too_large", "message": "Request body is too large."},
                    status=413,
                )
