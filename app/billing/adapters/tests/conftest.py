"""
Pytest fixtures for Stripe adapter tests.

The adapter, gateway_config and mock_client fixtures come from the billing
conftest.

Sections:
    - Mock Stripe Response Fixtures
    - Error Response Fixtures
"""

import json

import pytest
import stripe

from billing.tests.mocks import MockStripeObject


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@pytest.fixture
def mock_payment_intent():
    return MockStripeObject(
        {
            "id": "pi_test_123",
            "object": "payment_intent",
            "amount": 1999,
            "currency": "usd",
            "status": "requires_confirmation",
            "client_secret": "pi_test_123_secret",
        }
    )


@pytest.fixture
def event_payload():
    return json.dumps(
        {
            "id": "evt_test_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_test_123", "object": "payment_intent"}},
        }
    )


# =============================================================================
# Error Response Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    return stripe.CardError(
        message="Your card has insufficient funds.",
        param="card",
        code="card_declined",
        json_body={
            "error": {
                "code": "card_declined",
                "decline_code": "insufficient_funds",
                "message": "Your card has insufficient funds.",
                "charge": "ch_declined",
            }
        },
    )


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="Invalid currency: xyz",
        param="currency",
        code="parameter_invalid_empty",
    )


@pytest.fixture
def resource_missing_error():
    return stripe.InvalidRequestError(
        message="No such payment_intent: 'pi_missing'",
        param="intent",
        code="resource_missing",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(message="Too many requests")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError(message="Network error")


@pytest.fixture
def api_error():
    return stripe.APIError(message="Internal server error")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided")
