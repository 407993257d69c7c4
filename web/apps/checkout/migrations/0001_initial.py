import uuid

import django.core.serializers.json
import django.utils.timezone
from django.db import migrations, models


def _money(**kwargs):
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


def _json(**kwargs):
    return models.JSONField(encoder=django.core.serializers.json.DjangoJSONEncoder, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("unit_price", _money()),
                ("stock_quantity", models.IntegerField(default=0)),
                ("category_ids", models.JSONField(blank=True, default=list)),
                ("seller_id", models.CharField(blank=True, max_length=64, null=True)),
            ],
            options={
                "db_table": "products",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(stock_quantity__gte=0), name="product_stock_non_negative"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Campaign",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("type", models.CharField(max_length=32)),
                ("amount", _money(default=0)),
                ("valid_category_ids", models.JSONField(blank=True, default=list)),
                ("excluded_product_ids", models.JSONField(blank=True, default=list)),
                ("min_purchase_amount", _money(blank=True, null=True)),
                ("buy_x", models.PositiveIntegerField(blank=True, null=True)),
                ("get_y", models.PositiveIntegerField(blank=True, null=True)),
                ("rank", models.IntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("active", "Active"), ("inactive", "Inactive")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("ends_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={"db_table": "campaigns", "ordering": ["rank", "starts_at", "id"]},
        ),
        migrations.CreateModel(
            name="PromotionCode",
            fields=[
                ("code", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("type", models.CharField(max_length=32)),
                ("amount", _money(default=0)),
                ("min_purchase_amount", _money(default=0)),
                ("max_discount_amount", _money(blank=True, null=True)),
                ("applicable_product_ids", models.JSONField(blank=True, default=list)),
                ("one_time_use", models.BooleanField(default=False)),
                ("active", models.BooleanField(default=True)),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("ends_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={"db_table": "promotion_codes"},
        ),
        migrations.CreateModel(
            name="CartItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_id", models.CharField(db_index=True, max_length=64)),
                ("product_id", models.CharField(max_length=64)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("added_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "cart_items",
                "ordering": ["added_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("customer_id", "product_id"), name="cart_item_unique_product"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CustomerOrderLink",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_id", models.CharField(db_index=True, max_length=64)),
                ("order_id", models.UUIDField()),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "customer_orders",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("customer_id", "order_id"), name="customer_order_unique"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_id", models.CharField(db_index=True, max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("payment_method", models.CharField(max_length=32)),
                ("payment_id", models.CharField(blank=True, max_length=128, null=True)),
                ("transaction_id", models.CharField(blank=True, max_length=128, null=True)),
                ("payment_details", _json(blank=True, default=dict)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                ("items", _json()),
                ("applied_campaigns", _json(blank=True, default=list)),
                ("shipping_address", _json()),
                ("shipping_method", models.CharField(default="standard", max_length=16)),
                ("estimated_delivery", models.DateField(blank=True, null=True)),
                ("promotion", _json(blank=True, null=True)),
                ("promotion_code", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("subtotal", _money()),
                ("discount", _money(default=0)),
                ("tax", _money(default=0)),
                ("shipping_cost", _money(default=0)),
                ("total", _money()),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("shipped_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={"db_table": "orders", "ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="PaymentRecordModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("payment_id", models.CharField(max_length=128, unique=True)),
                ("order_id", models.UUIDField(db_index=True)),
                ("customer_id", models.CharField(max_length=64)),
                ("payment_status", models.CharField(max_length=16)),
                ("payment_method", models.CharField(max_length=32)),
                ("total_amount", _money()),
                ("currency", models.CharField(max_length=3)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("processor_response", _json(blank=True, default=dict)),
                ("billing_address", _json(blank=True, null=True)),
                ("metadata", _json(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "payments"},
        ),
        migrations.CreateModel(
            name="FinalizeOutcomeModel",
            fields=[
                ("order_id", models.UUIDField(primary_key=True, serialize=False)),
                ("customer_id", models.CharField(max_length=64)),
                ("cart_cleared", models.BooleanField(default=False)),
                ("order_linked", models.BooleanField(default=False)),
                ("committed_product_ids", models.JSONField(blank=True, default=list)),
                ("payment_recorded", models.BooleanField(default=False)),
                ("shortages", models.JSONField(blank=True, default=list)),
                ("errors", models.JSONField(blank=True, default=list)),
                ("attempts", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[("completed", "Completed"), ("needs_reconciliation", "Needs Reconciliation")],
                        default="needs_reconciliation",
                        max_length=32,
                    ),
                ),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={"db_table": "finalize_outcomes"},
        ),
    ]
