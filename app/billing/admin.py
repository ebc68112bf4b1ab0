"""
Billing admin configuration.

Stripe-owned snapshots (customers, payment intents, invoices, webhook
events) are read-only here; they only change through Stripe.
"""

from django.contrib import admin

from billing.models import (
    Invoice,
    PaymentIntentRecord,
    PaymentSource,
    Plan,
    StripeCustomer,
    Subscription,
    Transaction,
    WebhookEvent,
)


class ReadOnlySnapshotAdmin(admin.ModelAdmin):
    """Base for models that mirror Stripe objects."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(StripeCustomer)
class StripeCustomerAdmin(ReadOnlySnapshotAdmin):
    list_display = ["id", "user", "gateway_id", "reference", "created_at"]
    list_filter = ["gateway_id"]
    search_fields = ["reference", "user__email"]
    ordering = ["-created_at"]


@admin.register(PaymentIntentRecord)
class PaymentIntentRecordAdmin(ReadOnlySnapshotAdmin):
    list_display = ["id", "reference", "customer", "transaction_hash", "gateway_id", "created_at"]
    list_filter = ["gateway_id"]
    search_fields = ["reference", "transaction_hash", "customer__reference"]
    ordering = ["-created_at"]


@admin.register(Invoice)
class InvoiceAdmin(ReadOnlySnapshotAdmin):
    list_display = ["id", "reference", "subscription", "created_at"]
    search_fields = ["reference", "subscription__reference"]
    ordering = ["-created_at"]


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ["name", "handle", "reference", "gateway_id", "is_enabled", "is_archived"]
    list_filter = ["gateway_id", "is_enabled", "is_archived"]
    search_fields = ["name", "handle", "reference"]
    readonly_fields = ["plan_data", "date_archived", "created_at", "updated_at"]
    prepopulated_fields = {"handle": ("name",)}


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    Status flags are derived from Stripe and shown read-only.
    """

    list_display = [
        "id",
        "user",
        "plan",
        "reference",
        "has_started",
        "is_suspended",
        "is_canceled",
        "is_expired",
        "next_payment_date",
    ]
    list_filter = ["gateway_id", "is_suspended", "is_canceled", "is_expired"]
    search_fields = ["reference", "user__email"]
    readonly_fields = [
        "id",
        "reference",
        "subscription_data",
        "has_started",
        "is_canceled",
        "date_canceled",
        "is_expired",
        "date_expired",
        "is_suspended",
        "date_suspended",
        "next_payment_date",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ["id", "type", "status", "amount", "currency", "order_id", "reference", "created_at"]
    list_filter = ["type", "status", "gateway_id"]
    search_fields = ["hash", "reference", "order_number"]
    readonly_fields = ["id", "status", "hash", "reference", "code", "message", "response", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(PaymentSource)
class PaymentSourceAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "description", "token", "is_primary", "gateway_id"]
    list_filter = ["gateway_id", "is_primary"]
    search_fields = ["token", "description", "user__email"]
    readonly_fields = ["token", "response", "created_at", "updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlySnapshotAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "gateway_id",
        "event_type",
        "status",
        "delivery_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "gateway_id", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = ["id", "stripe_event_id", "event_type", "payload", "processed_at"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "gateway_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "delivery_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False
