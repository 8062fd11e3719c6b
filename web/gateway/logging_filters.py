"""Logging filters for enriching gateway log records.

``RequestIdFilter`` injects the current request id (from the ContextVar set by
``RequestIdMiddleware``) so every record can be correlated with the HTTP
request, including webhook deliveries. ``SecretRedactionFilter`` masks the
payment processor credentials should one ever end up in a log message.
"""

from logging import Filter, LogRecord

from django.conf import settings

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    If no request is in flight a hyphen ("-") is used so formatters can
    reliably reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


class SecretRedactionFilter(Filter):
    """Replace configured processor secrets with ``***`` in log messages."""

    SETTINGS = ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")

    def filter(self, record: LogRecord) -> bool:
        secrets = [getattr(settings, name, "") for name in self.SETTINGS]
        secrets = [s for s in secrets if s]
        if not secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in secrets:
            redacted = redacted.replace(secret, "***")
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
