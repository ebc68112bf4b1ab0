"""
Billing app configuration.

This app reconciles Stripe payment intents, subscriptions, invoices and
payment methods with local records.
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self) -> None:
        # Populates the webhook handler registry
        from billing.webhooks import handlers  # noqa: F401
