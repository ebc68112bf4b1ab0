"""
Webhook handling for Stripe events.

Webhooks are verified with the gateway's signing secret, recorded on a
WebhookEvent row and dispatched synchronously to exactly one handler.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/<slug:gateway_handle>/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from billing.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler
from billing.webhooks.views import stripe_webhook

__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
