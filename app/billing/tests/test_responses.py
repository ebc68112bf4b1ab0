"""
Tests for RequestResult classification.
"""

from billing.exceptions import StripeCardDeclinedError
from billing.services.responses import RequestResult


class TestPaymentIntentClassification:
    """Tests for classifying PaymentIntent snapshots."""

    def test_succeeded_is_successful(self):
        result = RequestResult.from_stripe_object({"id": "pi_1", "object": "payment_intent", "status": "succeeded"})

        assert result.successful is True
        assert result.requires_redirect is False
        assert result.reference == "pi_1"
        assert result.code == "succeeded"

    def test_requires_capture_is_successful(self):
        """An authorization that awaits capture counts as successful."""
        result = RequestResult.from_stripe_object({"id": "pi_1", "status": "requires_capture"})

        assert result.successful is True

    def test_next_action_redirect(self):
        result = RequestResult.from_stripe_object(
            {
                "id": "pi_1",
                "status": "requires_action",
                "next_action": {
                    "type": "redirect_to_url",
                    "redirect_to_url": {"url": "https://hooks.stripe.com/3ds", "return_url": "https://x"},
                },
            }
        )

        assert result.successful is False
        assert result.requires_redirect is True
        assert result.redirect_url == "https://hooks.stripe.com/3ds"

    def test_requires_payment_method_redirects_with_client_secret(self):
        result = RequestResult.from_stripe_object(
            {
                "id": "pi_1",
                "status": "requires_payment_method",
                "client_secret": "pi_1_secret_abc",
                "last_payment_error": {"code": "card_declined", "message": "Your card was declined."},
            }
        )

        assert result.requires_redirect is True
        assert result.redirect_url == ""
        assert result.redirect_data == {"client_secret": "pi_1_secret_abc"}
        assert result.code == "card_declined"
        assert result.message == "Your card was declined."

    def test_processing_intent_is_neither_success_nor_redirect(self):
        result = RequestResult.from_stripe_object({"id": "pi_1", "status": "processing"})

        assert result.successful is False
        assert result.requires_redirect is False


class TestRefundClassification:
    """Tests for classifying Refund snapshots."""

    def test_succeeded_refund(self):
        result = RequestResult.from_stripe_object({"id": "re_1", "object": "refund", "status": "succeeded"})

        assert result.successful is True
        assert result.processing is False
        assert result.reference == "re_1"

    def test_pending_refund_is_processing(self):
        result = RequestResult.from_stripe_object({"id": "re_1", "object": "refund", "status": "pending"})

        assert result.successful is False
        assert result.processing is True

    def test_failed_refund_carries_reason(self):
        result = RequestResult.from_stripe_object(
            {"id": "re_1", "object": "refund", "status": "failed", "failure_reason": "expired_or_canceled_card"}
        )

        assert result.successful is False
        assert result.message == "expired_or_canceled_card"


class TestFromError:
    def test_card_error_points_at_charge(self):
        error = StripeCardDeclinedError(
            "Your card has insufficient funds.",
            stripe_code="card_declined",
            decline_code="insufficient_funds",
            charge_id="ch_123",
        )

        result = RequestResult.from_error(error)

        assert result.successful is False
        assert result.reference == "ch_123"
        assert result.code == "card_declined"
        assert result.message == "Your card has insufficient funds."
        assert result.data["error"]["error_code"] == "CARD_DECLINED"
