"""Health endpoint for load balancers and container probes.

Reports the database and the circuit breaker state of each downstream
service. An open circuit degrades the report but does not fail it: the
gateway still serves reads while a dependency recovers.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.checkout.http_adapters import _catalog_cb
from apps.orders.http_adapters import _directory_cb, _notifications_cb

logger = logging.getLogger("checkout.health")

BREAKERS = (_catalog_cb, _directory_cb, _notifications_cb)


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health check: database unreachable")

    components = {"db": {"ok": db_ok}}
    for breaker in BREAKERS:
        state = breaker.state
        components[breaker.name] = {"ok": state != "OPEN", "circuit": state}

    code = 200 if db_ok else 503
    return JsonResponse({"ok": db_ok, "components": components}, status=code)
