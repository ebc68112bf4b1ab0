"""
Tests for ChargeOrchestrator: authorize, purchase, capture and refund.
"""

from decimal import Decimal

import pytest
import stripe

from billing.exceptions import CustomerError, GatewayError, NotSupportedError
from billing.hooks import build_payment_request
from billing.models import PaymentIntentRecord
from billing.services.responses import RequestResult
from billing.state_machines import TransactionStatus, TransactionType
from billing.tests.factories import PaymentIntentRecordFactory, TransactionFactory


@pytest.fixture
def orchestrator(gateway):
    return gateway.charges


@pytest.fixture
def existing_customer(mock_client, stripe_customer):
    """The payer's stored customer, still alive on Stripe."""
    mock_client.v1.customers.retrieve.return_value = {"id": stripe_customer.reference}
    return stripe_customer


# =============================================================================
# Request Building
# =============================================================================


class TestBuildRequest:
    """Tests for ChargeOrchestrator.build_request."""

    def test_core_fields(self, orchestrator, transaction):
        request = orchestrator.build_request(transaction, client_ip="10.0.0.1")

        assert request["amount"] == 1999
        assert request["currency"] == "usd"
        assert request["description"] == f"Order #{transaction.order_id}"
        assert request["metadata"] == {
            "order_id": transaction.order_id,
            "order_number": transaction.order_number,
            "transaction_id": str(transaction.pk),
            "transaction_reference": transaction.hash,
            "client_ip": "10.0.0.1",
        }
        assert "receipt_email" not in request

    def test_zero_decimal_amount(self, orchestrator, db):
        transaction = TransactionFactory(amount=Decimal("500"), currency="JPY")

        assert orchestrator.build_request(transaction)["amount"] == 500

    def test_receivers_may_add_metadata_only(self, orchestrator, transaction):
        def receiver(sender, transaction, request, **kwargs):
            request["amount"] = 1
            request["description"] = "changed"
            request["metadata"]["campaign"] = "spring"
            request["metadata"]["order_id"] = "tampered"

        build_payment_request.connect(receiver, weak=False)
        try:
            request = orchestrator.build_request(transaction)
        finally:
            build_payment_request.disconnect(receiver)

        assert request["amount"] == 1999
        assert request["description"] == f"Order #{transaction.order_id}"
        assert request["metadata"]["campaign"] == "spring"
        assert request["metadata"]["order_id"] == transaction.order_id

    def test_receipt_email_when_enabled(self, gateway_config, adapter, transaction):
        from dataclasses import replace

        from billing.gateways import SubscriptionGateway

        config = replace(gateway_config, send_receipt_email=True)
        orchestrator = SubscriptionGateway(config, adapter=adapter).charges

        request = orchestrator.build_request(transaction)

        assert request["receipt_email"] == transaction.user.email


# =============================================================================
# Authorize / Purchase
# =============================================================================


class TestAuthorizeOrPurchase:
    """Tests for ChargeOrchestrator.authorize_or_purchase."""

    def test_purchase_creates_and_confirms_intent(self, orchestrator, mock_client, existing_customer, transaction):
        mock_client.v1.payment_intents.create.return_value = {
            "id": "pi_1",
            "object": "payment_intent",
            "status": "requires_confirmation",
        }
        mock_client.v1.payment_intents.confirm.return_value = {
            "id": "pi_1",
            "object": "payment_intent",
            "status": "succeeded",
        }

        result = orchestrator.authorize_or_purchase(transaction, "pm_card_visa")

        assert result.successful is True
        assert result.reference == "pi_1"

        _, create_kwargs = mock_client.v1.payment_intents.create.call_args
        assert create_kwargs["params"]["capture_method"] == "automatic"
        assert create_kwargs["params"]["confirm"] is False
        assert create_kwargs["params"]["customer"] == "cus_test_1"
        assert create_kwargs["params"]["payment_method"] == "pm_card_visa"
        assert create_kwargs["options"] == {"idempotency_key": "txn_hash_1"}

        confirm_args, confirm_kwargs = mock_client.v1.payment_intents.confirm.call_args
        assert confirm_args == ("pi_1",)
        assert confirm_kwargs["options"] == {"idempotency_key": "confirm:txn_hash_1:pm_card_visa"}
        assert str(transaction.pk) in confirm_kwargs["params"]["return_url"]

        record = PaymentIntentRecord.objects.get(reference="pi_1")
        assert record.customer == existing_customer
        assert record.transaction_hash == "txn_hash_1"
        assert record.intent_data["status"] == "succeeded"

    def test_authorize_uses_manual_capture(self, orchestrator, mock_client, existing_customer, transaction):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.return_value = {"id": "pi_1", "status": "requires_capture"}

        result = orchestrator.authorize_or_purchase(transaction, "pm_card_visa", capture=False)

        assert result.successful is True
        _, create_kwargs = mock_client.v1.payment_intents.create.call_args
        assert create_kwargs["params"]["capture_method"] == "manual"

    def test_retry_updates_existing_intent(self, orchestrator, mock_client, existing_customer, transaction):
        PaymentIntentRecordFactory(
            customer=existing_customer,
            reference="pi_existing",
            transaction_hash=transaction.hash,
            intent_data={"id": "pi_existing", "status": "requires_payment_method"},
        )
        mock_client.v1.payment_intents.update.return_value = {
            "id": "pi_existing",
            "status": "requires_confirmation",
        }
        mock_client.v1.payment_intents.confirm.return_value = {"id": "pi_existing", "status": "succeeded"}

        result = orchestrator.authorize_or_purchase(transaction, "pm_new_card")

        assert result.successful is True
        mock_client.v1.payment_intents.create.assert_not_called()
        update_args, update_kwargs = mock_client.v1.payment_intents.update.call_args
        assert update_args == ("pi_existing",)
        assert update_kwargs["params"]["payment_method"] == "pm_new_card"
        assert "capture_method" not in update_kwargs["params"]
        assert PaymentIntentRecord.objects.filter(transaction_hash=transaction.hash).count() == 1

    def test_three_d_secure_redirect(self, orchestrator, mock_client, existing_customer, transaction):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.return_value = {
            "id": "pi_1",
            "status": "requires_action",
            "next_action": {"redirect_to_url": {"url": "https://hooks.stripe.com/3ds/pi_1"}},
        }

        result = orchestrator.authorize_or_purchase(transaction, "pm_card_threeDSecure2Required")

        assert result.requires_redirect is True
        assert result.redirect_url == "https://hooks.stripe.com/3ds/pi_1"

    def test_card_decline_returns_failed_result(self, orchestrator, mock_client, existing_customer, transaction):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.side_effect = stripe.CardError(
            "Your card was declined.",
            param=None,
            code="card_declined",
            json_body={"error": {"message": "Your card was declined.", "charge": "ch_declined"}},
        )

        result = orchestrator.authorize_or_purchase(transaction, "pm_card_chargeDeclined")

        assert result.successful is False
        assert result.code == "card_declined"
        assert result.reference == "ch_declined"
        assert result.message == "Your card was declined."

    def test_second_attempt_updates_intent_created_by_first(
        self, orchestrator, mock_client, existing_customer, transaction
    ):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.update.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.return_value = {"id": "pi_1", "status": "requires_payment_method"}

        orchestrator.authorize_or_purchase(transaction, "pm_card_visa")
        orchestrator.authorize_or_purchase(transaction, "pm_card_visa")

        assert mock_client.v1.payment_intents.create.call_count == 1
        assert mock_client.v1.payment_intents.update.call_count == 1
        update_args, _ = mock_client.v1.payment_intents.update.call_args
        assert update_args == ("pi_1",)
        record = PaymentIntentRecord.objects.get(transaction_hash=transaction.hash)
        assert record.reference == "pi_1"
        assert record.customer == existing_customer

    def test_retry_after_decline_confirms_with_new_key(
        self, orchestrator, mock_client, existing_customer, transaction
    ):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.update.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.side_effect = [
            stripe.CardError("Your card was declined.", param=None, code="card_declined"),
            {"id": "pi_1", "status": "succeeded"},
        ]

        declined = orchestrator.authorize_or_purchase(transaction, "pm_declined")
        retried = orchestrator.authorize_or_purchase(transaction, "pm_new_card")

        assert declined.successful is False
        assert retried.successful is True
        keys = [
            call.kwargs["options"]["idempotency_key"]
            for call in mock_client.v1.payment_intents.confirm.call_args_list
        ]
        assert keys == ["confirm:txn_hash_1:pm_declined", "confirm:txn_hash_1:pm_new_card"]

    def test_transaction_without_payer_raises_customer_error(self, orchestrator, mock_client, db):
        transaction = TransactionFactory(user=None)

        with pytest.raises(CustomerError):
            orchestrator.authorize_or_purchase(transaction, "pm_card_visa")

        mock_client.v1.payment_intents.create.assert_not_called()
        assert not PaymentIntentRecord.objects.exists()

    def test_unknown_customer_reference_raises_customer_error(self, orchestrator, mock_client, transaction):
        with pytest.raises(CustomerError):
            orchestrator.authorize_or_purchase(transaction, "pm_card_visa", customer_reference="cus_not_local")

        mock_client.v1.payment_intents.create.assert_not_called()
        assert not PaymentIntentRecord.objects.exists()

    def test_explicit_customer_reference(self, orchestrator, mock_client, stripe_customer, transaction):
        mock_client.v1.payment_intents.create.return_value = {"id": "pi_1", "status": "requires_confirmation"}
        mock_client.v1.payment_intents.confirm.return_value = {"id": "pi_1", "status": "succeeded"}

        orchestrator.authorize_or_purchase(transaction, "pm_card_visa", customer_reference="cus_test_1")

        record = PaymentIntentRecord.objects.get(reference="pi_1")
        assert record.customer == stripe_customer
        mock_client.v1.customers.retrieve.assert_not_called()

    def test_unexpected_error_raises_gateway_error(self, orchestrator, mock_client, existing_customer, transaction):
        mock_client.v1.payment_intents.create.side_effect = RuntimeError("socket closed")

        with pytest.raises(GatewayError):
            orchestrator.authorize_or_purchase(transaction, "pm_card_visa")


class TestCompletePurchase:
    def test_confirms_again_when_required(self, orchestrator, mock_client, db):
        transaction = TransactionFactory(reference="pi_1", hash="h_complete")
        mock_client.v1.payment_intents.retrieve.return_value = {
            "id": "pi_1",
            "status": "requires_confirmation",
            "payment_method": "pm_1",
        }
        mock_client.v1.payment_intents.confirm.return_value = {"id": "pi_1", "status": "succeeded"}

        result = orchestrator.complete_purchase(transaction)

        assert result.successful is True
        _, kwargs = mock_client.v1.payment_intents.confirm.call_args
        assert kwargs["options"] == {"idempotency_key": "complete:h_complete"}

    def test_already_succeeded(self, orchestrator, mock_client, db):
        transaction = TransactionFactory(reference="pi_1")
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "succeeded"}

        result = orchestrator.complete_purchase(transaction)

        assert result.successful is True
        mock_client.v1.payment_intents.confirm.assert_not_called()


# =============================================================================
# Capture / Refund
# =============================================================================


class TestCapture:
    """Tests for ChargeOrchestrator.capture."""

    def test_captures_authorized_intent(self, orchestrator, mock_client, transaction):
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "requires_capture"}
        mock_client.v1.payment_intents.capture.return_value = {"id": "pi_1", "status": "succeeded"}

        result = orchestrator.capture(transaction, "pi_1")

        assert result.successful is True
        args, kwargs = mock_client.v1.payment_intents.capture.call_args
        assert args == ("pi_1",)
        assert kwargs["options"] == {"idempotency_key": "pi_1"}

    def test_already_captured_is_not_captured_twice(self, orchestrator, mock_client, transaction):
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "succeeded"}

        result = orchestrator.capture(transaction, "pi_1")

        assert result.successful is True
        mock_client.v1.payment_intents.capture.assert_not_called()

    def test_updates_stored_snapshot(self, orchestrator, mock_client, stripe_customer, transaction):
        record = PaymentIntentRecordFactory(
            customer=stripe_customer,
            reference="pi_1",
            intent_data={"id": "pi_1", "status": "requires_capture"},
        )
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "requires_capture"}
        mock_client.v1.payment_intents.capture.return_value = {"id": "pi_1", "status": "succeeded"}

        orchestrator.capture(transaction, "pi_1")

        record.refresh_from_db()
        assert record.intent_data["status"] == "succeeded"


class TestRefund:
    """Tests for ChargeOrchestrator.refund."""

    def test_refunds_parent_intent(self, orchestrator, mock_client, db):
        parent = TransactionFactory(reference="pi_1", status=TransactionStatus.SUCCESS)
        refund = TransactionFactory(
            parent=parent,
            type=TransactionType.REFUND,
            amount=Decimal("5.00"),
            hash="refund_hash",
        )
        mock_client.v1.refunds.create.return_value = {"id": "re_1", "object": "refund", "status": "pending"}
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "succeeded"}

        result = orchestrator.refund(refund)

        assert result.processing is True
        assert result.reference == "re_1"
        _, kwargs = mock_client.v1.refunds.create.call_args
        assert kwargs["params"]["payment_intent"] == "pi_1"
        assert kwargs["params"]["amount"] == 500
        assert kwargs["options"] == {"idempotency_key": "refund_hash"}

    def test_unsupported_currency(self, orchestrator, mock_client, db):
        refund = TransactionFactory(type=TransactionType.REFUND, currency="XYZ", reference="pi_1")

        with pytest.raises(NotSupportedError):
            orchestrator.refund(refund)

        mock_client.v1.refunds.create.assert_not_called()

    def test_stripe_error_returns_failed_result(self, orchestrator, mock_client, db):
        refund = TransactionFactory(type=TransactionType.REFUND, reference="pi_1")
        mock_client.v1.refunds.create.side_effect = stripe.InvalidRequestError(
            "Charge has already been refunded.",
            param=None,
            code="charge_already_refunded",
        )

        result = orchestrator.refund(refund)

        assert result.successful is False
        assert result.code == "charge_already_refunded"


# =============================================================================
# Transaction Updates
# =============================================================================


class TestApplyResult:
    """Tests for ChargeOrchestrator.apply_result."""

    @pytest.mark.parametrize(
        "result,expected",
        [
            (RequestResult(successful=True, reference="pi_1", code="succeeded"), TransactionStatus.SUCCESS),
            (RequestResult(processing=True, reference="re_1", code="pending"), TransactionStatus.PROCESSING),
            (RequestResult(requires_redirect=True, reference="pi_1"), TransactionStatus.REDIRECT),
            (RequestResult(code="card_declined", message="Declined"), TransactionStatus.FAILED),
        ],
    )
    def test_moves_status(self, orchestrator, transaction, result, expected):
        orchestrator.apply_result(transaction, result)

        transaction.refresh_from_db()
        assert transaction.status == expected
        assert transaction.code == result.code

    def test_keeps_reference_when_result_has_none(self, orchestrator, db):
        transaction = TransactionFactory(reference="pi_1")

        orchestrator.apply_result(transaction, RequestResult(code="card_declined"))

        assert transaction.reference == "pi_1"

    def test_terminal_transaction_keeps_status(self, orchestrator, db):
        transaction = TransactionFactory(status=TransactionStatus.SUCCESS)

        orchestrator.apply_result(transaction, RequestResult(code="card_declined"))

        transaction.refresh_from_db()
        assert transaction.status == TransactionStatus.SUCCESS
        assert transaction.code == "card_declined"
