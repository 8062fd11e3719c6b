import uuid
from django.db import models


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        COMPLETED = "completed"
        FAILED = "failed"
        REFUNDED = "refunded"

    class OrderStatus(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"

    buyer_id = models.CharField(max_length=128, db_index=True)
    buyer_name = models.CharField(max_length=100, blank=True, default="")
    subtotal = models.PositiveIntegerField()
    shipping_fee = models.PositiveIntegerField(default=0)
    total_amount = models.PositiveIntegerField()
    payment_method = models.CharField(max_length=16, default="card")
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    order_status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    # reconciliation join key; one order per intent
    payment_intent_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    shipping_address = models.JSONField(null=True, blank=True)
    tracking_number = models.CharField(max_length=64, null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, related_name="items", on_delete=models.PROTECT)
    position = models.PositiveSmallIntegerField()
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=120)
    product_image = models.CharField(max_length=500, null=True, blank=True)
    price = models.PositiveIntegerField()
    quantity = models.PositiveSmallIntegerField()
    seller_id = models.CharField(max_length=128)
    seller_name = models.CharField(max_length=100, blank=True, default="")
    category = models.CharField(max_length=32, default="other")
    condition = models.CharField(max_length=32, default="good")

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["order", "position"], name="order_item_position_uniq"),
        ]


class ProcessedWebhookEvent(models.Model):
    """Processor events already applied to an order."""

    event_id = models.CharField(max_length=255, primary_key=True)
    event_type = models.CharField(max_length=64)
    order = models.ForeignKey(OrderModel, null=True, on_delete=models.SET_NULL, related_name="+")
    applied = models.BooleanField(default=True)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "processed_webhook_events"
