"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Transaction States (django-fsm):
    pending → processing → success
    pending → redirect → success / failed
    pending → success / failed
    processing → failed

Stripe Subscription Statuses (derived into flags, not stored as a state):
    incomplete → active / incomplete_expired
    trialing → active → past_due → active / canceled / unpaid
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    States for a gateway transaction.

    Terminal states: SUCCESS, FAILED

    State Flow:
        PENDING → SUCCESS (synchronous approval)
        PENDING → REDIRECT → SUCCESS (3-D Secure / next action)
        PENDING → PROCESSING → SUCCESS (async settlement, refunds)
        any non-terminal → FAILED
    """

    PENDING = "pending", "Pending"
    REDIRECT = "redirect", "Redirect"
    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class TransactionType(models.TextChoices):
    AUTHORIZE = "authorize", "Authorize"
    PURCHASE = "purchase", "Purchase"
    CAPTURE = "capture", "Capture"
    REFUND = "refund", "Refund"


class StripeSubscriptionStatus(models.TextChoices):
    """
    Subscription statuses reported by Stripe.

    Terminal statuses: INCOMPLETE_EXPIRED, CANCELED
    """

    INCOMPLETE = "incomplete", "Incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete expired"
    TRIALING = "trialing", "Trialing"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past due"
    CANCELED = "canceled", "Canceled"
    UNPAID = "unpaid", "Unpaid"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for received webhook events.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED
        PENDING → IGNORED (no handler registered)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
    IGNORED = "ignored", "Ignored"


class GatewayType(models.TextChoices):
    """Gateway variants selectable from BILLING_GATEWAYS."""

    PAYMENT_INTENTS = "payment_intents", "Payment intents"
    SUBSCRIPTION = "subscription", "Payment intents and subscriptions"
