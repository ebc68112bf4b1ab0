"""
Pytest fixtures shared by every billing test package.

The Stripe SDK client is replaced by a MagicMock; each test configures
the v1 service methods it expects to be called, returning plain dicts
the way StripeClient objects serialize through to_dict().

Usage:
    def test_capture(adapter, mock_client):
        mock_client.v1.payment_intents.retrieve.return_value = {"id": "pi_1", "status": "requires_capture"}
        ...
"""

import logging
from unittest.mock import MagicMock

import pytest

from billing.adapters import StripeAdapter
from billing.gateways import GatewayConfig, PaymentIntentsGateway, SubscriptionGateway
from billing.state_machines import GatewayType
from billing.tests.factories import (
    PlanFactory,
    StripeCustomerFactory,
    SubscriptionFactory,
    TransactionFactory,
    UserFactory,
)
from billing.tests.mocks import WEBHOOK_SECRET


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    return UserFactory()


# =============================================================================
# Gateway Fixtures
# =============================================================================


@pytest.fixture
def gateway_config():
    return GatewayConfig(
        handle="stripe",
        type=GatewayType.SUBSCRIPTION,
        secret_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def mock_client():
    """MagicMock standing in for stripe.StripeClient."""
    return MagicMock()


@pytest.fixture
def adapter(gateway_config, mock_client):
    return StripeAdapter(gateway_config, client=mock_client)


@pytest.fixture
def gateway(gateway_config, adapter):
    """Subscription gateway wired to the mocked client."""
    return SubscriptionGateway(gateway_config, adapter=adapter)


@pytest.fixture
def payment_intents_gateway(mock_client):
    config = GatewayConfig(
        handle="stripe",
        type=GatewayType.PAYMENT_INTENTS,
        secret_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
    )
    return PaymentIntentsGateway(config, adapter=StripeAdapter(config, client=mock_client))


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def stripe_customer(db, user):
    return StripeCustomerFactory(user=user, reference="cus_test_1")


@pytest.fixture
def plan(db):
    return PlanFactory(reference="plan_basic", name="Basic")


@pytest.fixture
def gold_plan(db):
    return PlanFactory(reference="plan_gold", name="Gold")


@pytest.fixture
def subscription(db, user, plan):
    """Active subscription with a minimal Stripe snapshot."""
    return SubscriptionFactory(
        user=user,
        plan=plan,
        reference="sub_test_1",
        subscription_data={
            "id": "sub_test_1",
            "status": "active",
            "customer": "cus_test_1",
            "items": {"data": [{"id": "si_test_1", "quantity": 1}]},
        },
    )


@pytest.fixture
def transaction(db, user):
    """Pending purchase of 19.99 USD."""
    return TransactionFactory(user=user, hash="txn_hash_1")


@pytest.fixture
def registered_gateway(gateway):
    """Put the mocked gateway in the registry so get_gateway("stripe") returns it."""
    from billing.gateways import _gateways

    _gateways[gateway.handle] = gateway
    return gateway


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Return unauthenticated API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def authenticated_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def billing_logs(caplog):
    """
    Capture billing records at INFO.

    The billing logger does not propagate, so caplog's handler is attached
    to it directly for the duration of the test.
    """
    billing_logger = logging.getLogger("billing")
    previous_level = billing_logger.level
    billing_logger.setLevel(logging.INFO)
    billing_logger.addHandler(caplog.handler)
    yield caplog
    billing_logger.removeHandler(caplog.handler)
    billing_logger.setLevel(previous_level)
