import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid.uuid4,
                editable=False,
                help_text="Unique identifier (UUID v4)",
                primary_key=True,
                serialize=False,
            ),
        ),
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=_base_fields()
            + [
                ("gateway_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=255)),
                ("handle", models.SlugField(max_length=255, unique=True)),
                ("reference", models.CharField(help_text="Stripe Plan ID (plan_xxx)", max_length=255)),
                ("plan_data", models.JSONField(blank=True, default=dict)),
                ("is_enabled", models.BooleanField(default=True)),
                ("is_archived", models.BooleanField(default=False)),
                ("date_archived", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Plan",
                "verbose_name_plural": "Plans",
                "ordering": ["name"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("gateway_id", "reference"),
                        name="billing_plan_unique_gateway_reference",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StripeCustomer",
            fields=_base_fields()
            + [
                (
                    "gateway_id",
                    models.CharField(
                        db_index=True,
                        help_text="Gateway handle from BILLING_GATEWAYS",
                        max_length=64,
                    ),
                ),
                (
                    "reference",
                    models.CharField(help_text="Stripe Customer ID (cus_xxx)", max_length=255, unique=True),
                ),
                (
                    "response",
                    models.JSONField(blank=True, default=dict, help_text="Customer snapshot returned by Stripe"),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stripe_customers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Stripe Customer",
                "verbose_name_plural": "Stripe Customers",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "gateway_id"),
                        name="billing_customer_unique_user_gateway",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentIntentRecord",
            fields=_base_fields()
            + [
                (
                    "gateway_id",
                    models.CharField(help_text="Gateway handle from BILLING_GATEWAYS", max_length=64),
                ),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "transaction_hash",
                    models.CharField(help_text="Hash of the originating transaction", max_length=64),
                ),
                (
                    "intent_data",
                    models.JSONField(blank=True, default=dict, help_text="PaymentIntent snapshot returned by Stripe"),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_intents",
                        to="billing.stripecustomer",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Intent",
                "verbose_name_plural": "Payment Intents",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("gateway_id", "customer", "transaction_hash"),
                        name="billing_intent_unique_gateway_customer_hash",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=_base_fields()
            + [
                ("gateway_id", models.CharField(db_index=True, max_length=64)),
                (
                    "reference",
                    models.CharField(help_text="Stripe Subscription ID (sub_xxx)", max_length=255, unique=True),
                ),
                ("subscription_data", models.JSONField(blank=True, default=dict)),
                ("has_started", models.BooleanField(default=True)),
                ("is_canceled", models.BooleanField(default=False)),
                ("date_canceled", models.DateTimeField(blank=True, null=True)),
                ("is_expired", models.BooleanField(default=False)),
                ("date_expired", models.DateTimeField(blank=True, null=True)),
                ("is_suspended", models.BooleanField(default=False)),
                ("date_suspended", models.DateTimeField(blank=True, null=True)),
                ("next_payment_date", models.DateTimeField(blank=True, null=True)),
                ("trial_days", models.PositiveIntegerField(default=0)),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.plan",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="billing_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "gateway_id"], name="billing_sub_user_gateway_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=_base_fields()
            + [
                (
                    "reference",
                    models.CharField(help_text="Stripe Invoice ID (in_xxx)", max_length=255, unique=True),
                ),
                (
                    "invoice_data",
                    models.JSONField(blank=True, default=dict, help_text="Invoice snapshot returned by Stripe"),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="invoices",
                        to="billing.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Invoice",
                "verbose_name_plural": "Invoices",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=_base_fields()
            + [
                ("gateway_id", models.CharField(db_index=True, max_length=64)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("authorize", "Authorize"),
                            ("purchase", "Purchase"),
                            ("capture", "Capture"),
                            ("refund", "Refund"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("redirect", "Redirect"),
                            ("processing", "Processing"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the transaction (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=4, max_digits=14)),
                ("currency", models.CharField(max_length=3)),
                ("order_id", models.PositiveBigIntegerField(blank=True, db_index=True, null=True)),
                ("order_number", models.CharField(blank=True, default="", max_length=64)),
                (
                    "hash",
                    models.CharField(
                        help_text="Stable transaction token used as the idempotency key",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("reference", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("code", models.CharField(blank=True, default="", max_length=255)),
                ("message", models.TextField(blank=True, default="")),
                ("response", models.JSONField(blank=True, null=True)),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="children",
                        to="billing.transaction",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="billing_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Transaction",
                "verbose_name_plural": "Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["gateway_id", "reference"], name="billing_txn_gateway_ref_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentSource",
            fields=_base_fields()
            + [
                ("gateway_id", models.CharField(db_index=True, max_length=64)),
                ("token", models.CharField(max_length=255, unique=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("response", models.JSONField(blank=True, default=dict)),
                ("is_primary", models.BooleanField(default=False)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_sources",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Source",
                "verbose_name_plural": "Payment Sources",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=_base_fields()
            + [
                (
                    "stripe_event_id",
                    models.CharField(help_text="Stripe Event ID (evt_xxx)", max_length=255, unique=True),
                ),
                ("gateway_id", models.CharField(db_index=True, max_length=64)),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'invoice.payment_succeeded')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Decoded webhook payload")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                            ("ignored", "Ignored"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("delivery_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="billing_webhook_status_idx"),
                    models.Index(fields=["event_type", "created_at"], name="billing_webhook_type_idx"),
                ],
            },
        ),
    ]
