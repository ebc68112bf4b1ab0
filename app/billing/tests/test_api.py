"""
Tests for the subscription API views.
"""

import uuid

import pytest
import stripe
from django.urls import reverse
from rest_framework import status

from billing.tests.factories import InvoiceFactory, PlanFactory, SubscriptionFactory


def payments_url(subscription_id):
    return reverse("billing:subscription_payments", kwargs={"subscription_id": subscription_id})


def preview_url(subscription_id):
    return reverse("billing:subscription_switch_preview", kwargs={"subscription_id": subscription_id})


class TestSubscriptionPaymentsView:
    """Tests for GET /billing/subscriptions/<id>/payments/."""

    def test_requires_authentication(self, api_client, subscription):
        response = api_client.get(payments_url(subscription.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_lists_payments_newest_first(self, authenticated_client, registered_gateway, subscription):
        InvoiceFactory(
            subscription=subscription,
            invoice_data={"amount_due": 1999, "currency": "usd", "created": 1000, "charge": "ch_old", "paid": True},
        )
        InvoiceFactory(
            subscription=subscription,
            invoice_data={"amount_due": 2999, "currency": "usd", "created": 2000, "charge": "ch_new", "paid": True},
        )

        response = authenticated_client.get(payments_url(subscription.id))

        assert response.status_code == status.HTTP_200_OK
        assert [row["reference"] for row in response.data] == ["ch_new", "ch_old"]
        assert response.data[0]["amount"] == "29.9900"
        assert response.data[0]["currency"] == "USD"
        assert response.data[0]["paid"] is True

    def test_other_users_subscription_is_hidden(self, authenticated_client, registered_gateway, other_user):
        foreign = SubscriptionFactory(user=other_user)

        response = authenticated_client.get(payments_url(foreign.id))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_unknown_subscription(self, authenticated_client, registered_gateway):
        response = authenticated_client.get(payments_url(uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestSwitchPreviewView:
    """Tests for GET /billing/subscriptions/<id>/switch-preview/."""

    def test_returns_preview_amount(self, authenticated_client, registered_gateway, mock_client, subscription, gold_plan):
        mock_client.v1.subscriptions.retrieve.return_value = {
            "id": "sub_test_1",
            "customer": "cus_test_1",
            "items": {"data": [{"id": "si_test_1"}]},
        }
        mock_client.v1.invoices.create_preview.return_value = {"total": 1250, "currency": "usd"}

        response = authenticated_client.get(preview_url(subscription.id), {"plan": str(gold_plan.id)})

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"plan": str(gold_plan.id), "amount": "12.5000"}

    def test_plan_is_required(self, authenticated_client, registered_gateway, subscription):
        response = authenticated_client.get(preview_url(subscription.id))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "plan" in response.data

    def test_archived_plan(self, authenticated_client, registered_gateway, subscription):
        archived = PlanFactory(is_archived=True)

        response = authenticated_client.get(preview_url(subscription.id), {"plan": str(archived.id)})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_stripe_failure_returns_bad_gateway(
        self, authenticated_client, registered_gateway, mock_client, subscription, gold_plan
    ):
        mock_client.v1.subscriptions.retrieve.side_effect = stripe.APIConnectionError("down")

        response = authenticated_client.get(preview_url(subscription.id), {"plan": str(gold_plan.id)})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data["error_code"] == "STRIPE_UNAVAILABLE"
