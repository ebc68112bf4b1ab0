"""
Celery tasks for billing maintenance.

This module provides async tasks for:
- Importing every Stripe payment method of a gateway
- Re-importing the invoice history of a subscription

Usage:
    from billing.tasks import sync_payment_methods_task

    sync_payment_methods_task.delay("stripe")

    from billing.tasks import refresh_subscription_payments_task
    refresh_subscription_payments_task.delay(str(subscription.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from billing.exceptions import StripeAPIUnavailableError, StripeRateLimitError
from billing.gateways import SubscriptionGateway, get_gateway
from billing.models import Subscription

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_STRIPE_RETRIES = 5
RETRYABLE_ERRORS = (StripeRateLimitError, StripeAPIUnavailableError)


# =============================================================================
# Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_STRIPE_RETRIES},
    acks_late=True,
)
def sync_payment_methods_task(self, gateway_handle: str) -> dict:
    """
    Import the card payment methods of every Stripe customer.

    Args:
        gateway_handle: Key in BILLING_GATEWAYS

    Returns:
        Dict with the gateway and the number of payment methods synced
    """
    gateway = get_gateway(gateway_handle)
    count = gateway.sync_all_payment_methods()

    logger.info(
        "Payment method sync finished",
        extra={"gateway_id": gateway_handle, "count": count, "task_id": self.request.id},
    )
    return {"gateway_id": gateway_handle, "count": count}


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_STRIPE_RETRIES},
    acks_late=True,
)
def refresh_subscription_payments_task(self, subscription_id: str) -> dict:
    """
    Re-import a subscription's invoices from Stripe.

    Args:
        subscription_id: UUID of the local Subscription

    Returns:
        Dict with the processing status and invoice count
    """
    if isinstance(subscription_id, str):
        subscription_id = UUID(subscription_id)

    try:
        subscription = Subscription.objects.get(id=subscription_id)
    except Subscription.DoesNotExist:
        logger.error(
            "Subscription not found",
            extra={"subscription_id": str(subscription_id)},
        )
        return {"status": "not_found", "subscription_id": str(subscription_id)}

    gateway = get_gateway(subscription.gateway_id)
    if not isinstance(gateway, SubscriptionGateway):
        logger.warning(
            "Gateway does not handle subscriptions",
            extra={"gateway_id": subscription.gateway_id},
        )
        return {"status": "not_supported", "subscription_id": str(subscription_id)}

    count = gateway.refresh_payment_history(subscription)
    return {
        "status": "refreshed",
        "subscription_id": str(subscription_id),
        "invoices": count,
    }
