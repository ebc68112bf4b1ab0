"""
Fixtures for webhook endpoint tests.

Events are built with billing.tests.mocks.make_event and signed with the
test gateway's webhook secret.
"""

import json

import pytest

from billing.tests.mocks import sign_payload


@pytest.fixture
def post_event(client):
    """
    POST a signed event to the Stripe webhook endpoint.

    Usage:
        response = post_event(make_event("payment_intent.succeeded", {...}))
    """

    def _post(event: dict, gateway_handle: str = "stripe", signature: str | None = None):
        payload = json.dumps(event)
        return client.post(
            f"/billing/webhooks/{gateway_handle}/",
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature if signature is not None else sign_payload(payload),
        )

    return _post
