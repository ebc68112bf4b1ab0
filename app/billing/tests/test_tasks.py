"""
Tests for billing Celery tasks.

Tasks are called directly (synchronously) with the gateway registry
pointing at the mocked Stripe client.
"""

import uuid
from unittest.mock import patch

import pytest

from billing.exceptions import StripeRateLimitError
from billing.tasks import (
    MAX_STRIPE_RETRIES,
    refresh_subscription_payments_task,
    sync_payment_methods_task,
)
from billing.tests.factories import SubscriptionFactory
from billing.tests.mocks import MockStripeList


class TestSyncPaymentMethodsTask:
    """Tests for sync_payment_methods_task."""

    def test_returns_count(self, registered_gateway, mock_client, db):
        mock_client.v1.customers.list.return_value = MockStripeList([])

        result = sync_payment_methods_task("stripe")

        assert result == {"gateway_id": "stripe", "count": 0}

    def test_retries_on_rate_limit(self):
        assert StripeRateLimitError in sync_payment_methods_task.autoretry_for
        assert sync_payment_methods_task.retry_kwargs == {"max_retries": MAX_STRIPE_RETRIES}


class TestRefreshSubscriptionPaymentsTask:
    """Tests for refresh_subscription_payments_task."""

    def test_refreshes_history(self, registered_gateway, mock_client, subscription):
        mock_client.v1.subscriptions.retrieve.return_value = {"id": "sub_test_1", "current_period_end": 1767225600}
        mock_client.v1.invoices.list.return_value = {"data": [{"id": "in_1", "currency": "usd"}], "has_more": False}

        result = refresh_subscription_payments_task(str(subscription.id))

        assert result == {
            "status": "refreshed",
            "subscription_id": str(subscription.id),
            "invoices": 1,
        }
        assert subscription.invoices.count() == 1

    def test_subscription_not_found(self, db):
        missing = str(uuid.uuid4())

        result = refresh_subscription_payments_task(missing)

        assert result == {"status": "not_found", "subscription_id": missing}

    def test_gateway_without_subscriptions(self, payment_intents_gateway, db):
        subscription = SubscriptionFactory()

        with patch("billing.tasks.get_gateway", return_value=payment_intents_gateway):
            result = refresh_subscription_payments_task(str(subscription.id))

        assert result["status"] == "not_supported"
