"""
Tests for webhook event handlers.

Handlers are called through dispatch_webhook with stored WebhookEvent
rows, the same way the webhook view calls them.
"""

from decimal import Decimal

import pytest

from billing.exceptions import InvalidConfigError, StripeAPIUnavailableError
from billing.models import Invoice, PaymentSource, Transaction
from billing.state_machines import TransactionStatus, TransactionType
from billing.tests.factories import (
    PaymentSourceFactory,
    TransactionFactory,
    WebhookEventFactory,
)
from billing.tests.mocks import make_event
from billing.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler


def stored_event(event_type: str, obj: dict):
    return WebhookEventFactory(event_type=event_type, payload=make_event(event_type, obj))


# =============================================================================
# Registry Tests
# =============================================================================


class TestHandlerRegistry:
    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="already registered"):

            @register_handler("payment_intent.succeeded")
            def duplicate(webhook_event, gateway):
                pass

    def test_known_event_types(self):
        for event_type in (
            "payment_method.attached",
            "payment_method.detached",
            "customer.updated",
            "payment_intent.succeeded",
            "charge.refund.updated",
            "plan.updated",
            "plan.deleted",
            "invoice.created",
            "invoice.payment_succeeded",
            "invoice.payment_failed",
            "customer.subscription.updated",
            "customer.subscription.deleted",
        ):
            assert event_type in WEBHOOK_HANDLERS

    @pytest.mark.django_db
    def test_dispatch_without_handler(self, gateway):
        result = dispatch_webhook(stored_event("account.updated", {"id": "acct_1"}), gateway)

        assert result.success
        assert result.data is None


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@pytest.mark.django_db
class TestPaymentIntentSucceeded:
    def test_settles_processing_parent(self, gateway, user):
        txn = TransactionFactory(user=user, reference="pi_1", status=TransactionStatus.PROCESSING)
        intent = {"id": "pi_1", "object": "payment_intent", "status": "succeeded"}

        result = dispatch_webhook(stored_event("payment_intent.succeeded", intent), gateway)

        txn.refresh_from_db()
        assert result.success
        assert txn.status == TransactionStatus.SUCCESS
        assert txn.response == intent

    def test_settles_processing_child(self, gateway, user):
        parent = TransactionFactory(
            user=user,
            type=TransactionType.AUTHORIZE,
            reference="pi_1",
            status=TransactionStatus.SUCCESS,
        )
        child = TransactionFactory(
            user=user,
            parent=parent,
            type=TransactionType.CAPTURE,
            reference="pi_1",
            status=TransactionStatus.PROCESSING,
        )
        intent = {"id": "pi_1", "object": "payment_intent", "status": "succeeded"}

        dispatch_webhook(stored_event("payment_intent.succeeded", intent), gateway)

        child.refresh_from_db()
        parent.refresh_from_db()
        assert child.status == TransactionStatus.SUCCESS
        assert parent.status == TransactionStatus.SUCCESS

    def test_settled_parent_left_alone(self, gateway, user):
        txn = TransactionFactory(user=user, reference="pi_1", status=TransactionStatus.FAILED)
        intent = {"id": "pi_1", "object": "payment_intent", "status": "succeeded"}

        result = dispatch_webhook(stored_event("payment_intent.succeeded", intent), gateway)

        txn.refresh_from_db()
        assert result.data is None
        assert txn.status == TransactionStatus.FAILED

    def test_unknown_intent(self, gateway):
        intent = {"id": "pi_unknown", "object": "payment_intent", "status": "succeeded"}

        result = dispatch_webhook(stored_event("payment_intent.succeeded", intent), gateway)

        assert result.success
        assert result.data is None


@pytest.mark.django_db
class TestRefundUpdated:
    @pytest.fixture
    def refund_transaction(self, user):
        parent = TransactionFactory(user=user, reference="pi_1", status=TransactionStatus.SUCCESS)
        return TransactionFactory(
            user=user,
            parent=parent,
            type=TransactionType.REFUND,
            amount=Decimal("5.00"),
            reference="re_1",
            status=TransactionStatus.PROCESSING,
        )

    def test_succeeded(self, gateway, refund_transaction):
        dispatch_webhook(stored_event("charge.refund.updated", {"id": "re_1", "status": "succeeded"}), gateway)

        refund_transaction.refresh_from_db()
        assert refund_transaction.status == TransactionStatus.SUCCESS
        assert refund_transaction.message == ""

    def test_pending(self, gateway, refund_transaction):
        dispatch_webhook(stored_event("charge.refund.updated", {"id": "re_1", "status": "pending"}), gateway)

        refund_transaction.refresh_from_db()
        assert refund_transaction.status == TransactionStatus.PROCESSING
        assert refund_transaction.message == "Processing"

    def test_failed_keeps_reason(self, gateway, refund_transaction):
        refund = {"id": "re_1", "status": "failed", "failure_reason": "expired_or_canceled_card"}

        dispatch_webhook(stored_event("charge.refund.updated", refund), gateway)

        refund_transaction.refresh_from_db()
        assert refund_transaction.status == TransactionStatus.FAILED
        assert refund_transaction.message == "expired_or_canceled_card"

    def test_already_settled(self, gateway, refund_transaction):
        Transaction.objects.filter(pk=refund_transaction.pk).update(status=TransactionStatus.SUCCESS)

        result = dispatch_webhook(
            stored_event("charge.refund.updated", {"id": "re_1", "status": "failed"}),
            gateway,
        )

        refund_transaction.refresh_from_db()
        assert result.success
        assert refund_transaction.status == TransactionStatus.SUCCESS


# =============================================================================
# Payment Method Handlers
# =============================================================================


@pytest.mark.django_db
class TestPaymentMethodHandlers:
    def test_attached_creates_source(self, gateway, mock_client, stripe_customer):
        mock_client.v1.customers.retrieve.return_value = {"id": "cus_test_1"}
        payment_method = {
            "id": "pm_1",
            "object": "payment_method",
            "customer": "cus_test_1",
            "type": "card",
            "card": {"brand": "visa", "last4": "4242"},
        }

        dispatch_webhook(stored_event("payment_method.attached", payment_method), gateway)

        source = PaymentSource.objects.get(token="pm_1")
        assert source.user == stripe_customer.user
        assert source.description == "Visa ending in 4242"

    def test_deleted_customer_ignored(self, gateway, mock_client, stripe_customer):
        mock_client.v1.customers.retrieve.return_value = {"id": "cus_test_1", "deleted": True}
        payment_method = {"id": "pm_1", "customer": "cus_test_1", "type": "card", "card": {}}

        dispatch_webhook(stored_event("payment_method.updated", payment_method), gateway)

        assert not PaymentSource.objects.filter(token="pm_1").exists()

    def test_detached_deletes_source(self, gateway, user):
        PaymentSourceFactory(user=user, token="pm_1")

        result = dispatch_webhook(stored_event("payment_method.detached", {"id": "pm_1"}), gateway)

        assert result.data == 1
        assert not PaymentSource.objects.filter(token="pm_1").exists()

    def test_customer_updated_sets_primary(self, gateway, user, stripe_customer):
        old = PaymentSourceFactory(user=user, token="pm_old", is_primary=True)
        new = PaymentSourceFactory(user=user, token="pm_new")
        customer = {"id": "cus_test_1", "invoice_settings": {"default_payment_method": "pm_new"}}

        dispatch_webhook(stored_event("customer.updated", customer), gateway)

        old.refresh_from_db()
        new.refresh_from_db()
        assert new.is_primary
        assert not old.is_primary


# =============================================================================
# Plan Handlers
# =============================================================================


@pytest.mark.django_db
class TestPlanHandlers:
    def test_plan_updated_stores_snapshot(self, gateway, plan):
        dispatch_webhook(stored_event("plan.updated", {"id": "plan_basic", "amount": 1500}), gateway)

        plan.refresh_from_db()
        assert plan.plan_data["amount"] == 1500
        assert not plan.is_archived

    def test_plan_deleted_archives(self, gateway, plan):
        dispatch_webhook(stored_event("plan.deleted", {"id": "plan_basic"}), gateway)

        plan.refresh_from_db()
        assert plan.is_archived
        assert plan.date_archived is not None

    def test_unknown_plan_raises(self, gateway):
        with pytest.raises(InvalidConfigError):
            dispatch_webhook(stored_event("plan.updated", {"id": "plan_missing"}), gateway)

    def test_not_supported_on_payment_intents_gateway(self, payment_intents_gateway, plan):
        result = dispatch_webhook(stored_event("plan.updated", {"id": "plan_basic"}), payment_intents_gateway)

        assert not result.success
        assert result.error_code == "NOT_SUPPORTED"


# =============================================================================
# Invoice Handlers
# =============================================================================


@pytest.mark.django_db
class TestInvoiceHandlers:
    def test_payment_succeeded_records_invoice(self, gateway, mock_client, subscription):
        mock_client.v1.subscriptions.retrieve.return_value = {
            "id": "sub_test_1",
            "current_period_end": 1702592000,
        }
        invoice = {
            "id": "in_1",
            "subscription": "sub_test_1",
            "paid": True,
            "amount_due": 2999,
            "currency": "usd",
            "created": 1700000000,
            "charge": "ch_1",
        }

        result = dispatch_webhook(stored_event("invoice.payment_succeeded", invoice), gateway)

        assert result.success
        assert Invoice.objects.get(reference="in_1").subscription == subscription
        subscription.refresh_from_db()
        assert subscription.next_payment_date is not None

    def test_unpaid_invoice_skipped(self, gateway, subscription):
        invoice = {"id": "in_1", "subscription": "sub_test_1", "paid": False}

        result = dispatch_webhook(stored_event("invoice.payment_succeeded", invoice), gateway)

        assert result.data is None
        assert not Invoice.objects.exists()

    def test_invoice_created_without_immediate_charge(self, gateway, mock_client):
        invoice = {"id": "in_1", "paid": False, "collection_method": "charge_automatically"}

        result = dispatch_webhook(stored_event("invoice.created", invoice), gateway)

        assert result.data is False
        mock_client.v1.invoices.pay.assert_not_called()

    def test_payment_failed_refreshes_subscription(self, gateway, mock_client, subscription):
        mock_client.v1.subscriptions.retrieve.return_value = {
            "id": "sub_test_1",
            "status": "past_due",
            "customer": "cus_test_1",
        }
        invoice = {"id": "in_1", "subscription": "sub_test_1", "paid": False}

        dispatch_webhook(stored_event("invoice.payment_failed", invoice), gateway)

        subscription.refresh_from_db()
        assert subscription.subscription_data["status"] == "past_due"
        assert subscription.is_suspended

    def test_invoice_events_not_supported(self, payment_intents_gateway):
        result = dispatch_webhook(
            stored_event("invoice.payment_succeeded", {"id": "in_1", "paid": True}),
            payment_intents_gateway,
        )

        assert result.error_code == "NOT_SUPPORTED"


# =============================================================================
# Subscription Handlers
# =============================================================================


@pytest.mark.django_db
class TestSubscriptionHandlers:
    def test_deleted_expires_subscription(self, gateway, subscription):
        dispatch_webhook(stored_event("customer.subscription.deleted", {"id": "sub_test_1"}), gateway)

        subscription.refresh_from_db()
        assert subscription.is_expired
        assert subscription.date_expired is not None

    def test_updated_switches_plan(self, gateway, mock_client, subscription, gold_plan):
        remote = {
            "id": "sub_test_1",
            "status": "active",
            "customer": "cus_test_1",
            "plan": {"id": "plan_gold"},
        }
        mock_client.v1.subscriptions.retrieve.return_value = remote

        dispatch_webhook(stored_event("customer.subscription.updated", {"id": "sub_test_1"}), gateway)

        subscription.refresh_from_db()
        assert subscription.plan == gold_plan
        assert subscription.subscription_data == remote

    def test_updated_falls_back_to_payload(self, gateway, mock_client, subscription, plan):
        mock_client.v1.subscriptions.retrieve.side_effect = StripeAPIUnavailableError("down")
        payload = {"id": "sub_test_1", "status": "active", "plan": {"id": "plan_basic"}}

        dispatch_webhook(stored_event("customer.subscription.updated", payload), gateway)

        subscription.refresh_from_db()
        assert subscription.subscription_data == payload
        assert subscription.plan == plan

    def test_unknown_subscription(self, gateway):
        result = dispatch_webhook(
            stored_event("customer.subscription.deleted", {"id": "sub_missing"}),
            gateway,
        )

        assert result.success
        assert result.data is None
