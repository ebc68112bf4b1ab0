"""
Tests for billing management commands.
"""

from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import CommandError, call_command

from billing.models import Invoice, PaymentIntentRecord, StripeCustomer
from billing.tests.factories import InvoiceFactory, PaymentIntentRecordFactory, StripeCustomerFactory
from billing.tests.mocks import MockStripeList


class TestBillingResetData:
    """Tests for billing_reset_data."""

    @pytest.fixture
    def billing_data(self, subscription):
        customer = StripeCustomerFactory()
        PaymentIntentRecordFactory(customer=customer)
        InvoiceFactory(subscription=subscription)

    def test_force_deletes_everything(self, billing_data):
        out = StringIO()

        call_command("billing_reset_data", "--force", stdout=out)

        assert not PaymentIntentRecord.objects.exists()
        assert not Invoice.objects.exists()
        assert not StripeCustomer.objects.exists()
        assert "Deleted 1 payment intents, 1 invoices and 1 customers" in out.getvalue()

    def test_declined_prompt_keeps_data(self, billing_data):
        out = StringIO()

        with patch("builtins.input", return_value="no"):
            call_command("billing_reset_data", stdout=out)

        assert "Skipping data reset." in out.getvalue()
        assert StripeCustomer.objects.count() == 1

    def test_confirmed_prompt(self, billing_data):
        with patch("builtins.input", return_value="yes"):
            call_command("billing_reset_data", stdout=StringIO())

        assert not StripeCustomer.objects.exists()


class TestBillingSyncPaymentMethods:
    """Tests for billing_sync_payment_methods."""

    def test_syncs_synchronously(self, registered_gateway, mock_client, db):
        mock_client.v1.customers.list.return_value = MockStripeList([])
        out = StringIO()

        call_command("billing_sync_payment_methods", "--gateway", "stripe", "--force", stdout=out)

        assert "Synced 0 payment methods." in out.getvalue()

    def test_queues_task(self, registered_gateway):
        out = StringIO()

        with patch("billing.management.commands.billing_sync_payment_methods.sync_payment_methods_task") as task:
            call_command("billing_sync_payment_methods", "--gateway", "stripe", "--force", "--async", stdout=out)

        task.delay.assert_called_once_with("stripe")
        assert "Sync queued." in out.getvalue()

    def test_declined_prompt(self, registered_gateway, mock_client):
        out = StringIO()

        with patch("builtins.input", return_value="n"):
            call_command("billing_sync_payment_methods", "--gateway", "stripe", stdout=out)

        assert "Skipping data sync." in out.getvalue()
        mock_client.v1.customers.list.assert_not_called()

    def test_unknown_gateway(self, settings):
        settings.BILLING_GATEWAYS = {}

        with pytest.raises(CommandError):
            call_command("billing_sync_payment_methods", "--gateway", "nope", "--force", stdout=StringIO())

    def test_stripe_failure(self, registered_gateway, mock_client):
        import stripe

        mock_client.v1.customers.list.side_effect = stripe.AuthenticationError("Invalid API Key")

        with pytest.raises(CommandError):
            call_command("billing_sync_payment_methods", "--gateway", "stripe", "--force", stdout=StringIO())
