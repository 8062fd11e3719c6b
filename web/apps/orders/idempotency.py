"""Event-id ledger for processor webhooks.

The processor redelivers events until it receives a 2xx, and may deliver
the same event to several workers at once. Each event id that touched an
order is recorded here so a redelivery is recognised and skipped.
"""

from django.db import IntegrityError, transaction

from .models import ProcessedWebhookEvent


def already_processed(event_id: str) -> bool:
    return bool(event_id) and ProcessedWebhookEvent.objects.filter(event_id=event_id).exists()


def claim_event(event_id: str, event_type: str, order_id, applied: bool = True) -> bool:
    """Record ``event_id`` as processed for ``order_id``.

    Must run inside the transaction that applies the event, so the claim and
    the order change commit or roll back together. The insert uses a nested
    savepoint: if another worker recorded the same id first, only the
    savepoint is rolled back.

    Args:
        event_id: Processor event id. Events without one are never recorded.
        event_type: Processor event type, kept for auditing.
        order_id: Order the event was matched to.
        applied: False when the event was stale and left the order unchanged.

    Returns:
        bool: True when this call recorded the event, False when it was
        already recorded.
    """
    if not event_id:
        return True
    try:
        with transaction.atomic():
            ProcessedWebhookEvent.objects.create(
                event_id=event_id, event_type=event_type, order_id=order_id, applied=applied
            )
            return True
    except IntegrityError:
        return False
