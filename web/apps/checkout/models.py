import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


def _money(**kwargs):
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


class Product(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=200)
    unit_price = _money()
    # Mutated only through the conditional decrement in repository.OrmStock
    stock_quantity = models.IntegerField(default=0)
    category_ids = models.JSONField(default=list, blank=True)
    seller_id = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "products"
        constraints = [
            models.CheckConstraint(condition=models.Q(stock_quantity__gte=0), name="product_stock_non_negative"),
        ]


class Campaign(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft"
        ACTIVE = "active"
        INACTIVE = "inactive"

    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=200)
    # Free text; unknown types are logged and skipped by the discount engine
    type = models.CharField(max_length=32)
    amount = _money(default=0)
    valid_category_ids = models.JSONField(default=list, blank=True)
    excluded_product_ids = models.JSONField(default=list, blank=True)
    min_purchase_amount = _money(null=True, blank=True)
    buy_x = models.PositiveIntegerField(null=True, blank=True)
    get_y = models.PositiveIntegerField(null=True, blank=True)
    rank = models.IntegerField(default=0)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "campaigns"
        ordering = ["rank", "starts_at", "id"]


class PromotionCode(models.Model):
    code = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=200)
    type = models.CharField(max_length=32)
    amount = _money(default=0)
    min_purchase_amount = _money(default=0)
    max_discount_amount = _money(null=True, blank=True)
    applicable_product_ids = models.JSONField(default=list, blank=True)
    one_time_use = models.BooleanField(default=False)
    active = models.BooleanField(default=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "promotion_codes"


class CartItem(models.Model):
    customer_id = models.CharField(max_length=64, db_index=True)
    product_id = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField(default=1)
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "cart_items"
        ordering = ["added_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["customer_id", "product_id"], name="cart_item_unique_product"),
        ]


class CustomerOrderLink(models.Model):
    customer_id = models.CharField(max_length=64, db_index=True)
    order_id = models.UUIDField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "customer_orders"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["customer_id", "order_id"], name="customer_order_unique"),
        ]


class OrderModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer_id = models.CharField(max_length=64, db_index=True)

    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        REFUNDED = "refunded"
        FAILED = "failed"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        COMPLETED = "completed"
        FAILED = "failed"
        REFUNDED = "refunded"

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=32)
    payment_id = models.CharField(max_length=128, null=True, blank=True)
    transaction_id = models.CharField(max_length=128, null=True, blank=True)
    payment_details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    failure_reason = models.TextField(null=True, blank=True)

    # Embedded line items with their price_at_purchase
    items = models.JSONField(encoder=DjangoJSONEncoder)
    applied_campaigns = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    shipping_address = models.JSONField(encoder=DjangoJSONEncoder)
    shipping_method = models.CharField(max_length=16, default="standard")
    estimated_delivery = models.DateField(null=True, blank=True)
    promotion = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    promotion_code = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    subtotal = _money()
    discount = _money(default=0)
    tax = _money(default=0)
    shipping_cost = _money(default=0)
    total = _money()
    currency = models.CharField(max_length=3, default="USD")

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class PaymentRecordModel(models.Model):
    payment_id = models.CharField(max_length=128, unique=True)
    order_id = models.UUIDField(db_index=True)
    customer_id = models.CharField(max_length=64)
    payment_status = models.CharField(max_length=16)
    payment_method = models.CharField(max_length=32)
    total_amount = _money()
    currency = models.CharField(max_length=3)
    description = models.CharField(max_length=255, blank=True)
    processor_response = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    billing_address = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payments"


class FinalizeOutcomeModel(models.Model):
    class Status(models.TextChoices):
        COMPLETED = "completed"
        NEEDS_RECONCILIATION = "needs_reconciliation"

    order_id = models.UUIDField(primary_key=True)
    customer_id = models.CharField(max_length=64)
    cart_cleared = models.BooleanField(default=False)
    order_linked = models.BooleanField(default=False)
    committed_product_ids = models.JSONField(default=list, blank=True)
    payment_recorded = models.BooleanField(default=False)
    shortages = models.JSONField(default=list, blank=True)
    errors = models.JSONField(default=list, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NEEDS_RECONCILIATION)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "finalize_outcomes"
