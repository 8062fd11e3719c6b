"""Uniform JSON error bodies for the API.

Every error leaves the gateway as ``{"error": <code>, "message": <text>}``,
whether a view builds it with ``error_response`` or DRF raises an
``APIException`` (authentication, permissions, throttling, parse errors).
"""

from rest_framework.response import Response
from rest_framework.views import exception_handler


def error_response(code: str, message: str, status: int, **extra) -> Response:
    body = {"error": code, "message": message}
    body.update(extra)
    return Response(body, status=status)


def api_exception_handler(exc, context):
    """DRF exception handler producing ``{error, message}`` bodies."""
    response = exception_handler(exc, context)
    if response is None:
        return None
    detail = getattr(exc, "detail", None)
    code = getattr(detail, "code", None) or getattr(exc, "default_code", "error")
    message = str(detail) if detail is not None else str(exc)
    response.data = {"error": code, "message": message}
    return response
