"""
URL configuration for the billing app.

Routes:
    - POST webhooks/<gateway_handle>/ - Stripe webhook endpoint
    - GET subscriptions/<uuid>/payments/ - Payment history
    - GET subscriptions/<uuid>/switch-preview/ - Plan switch cost

All routes are prefixed with /billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import SubscriptionPaymentsView, SwitchPreviewView
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<slug:gateway_handle>/", stripe_webhook, name="stripe_webhook"),
    # Subscriptions
    path(
        "subscriptions/<uuid:subscription_id>/payments/",
        SubscriptionPaymentsView.as_view(),
        name="subscription_payments",
    ),
    path(
        "subscriptions/<uuid:subscription_id>/switch-preview/",
        SwitchPreviewView.as_view(),
        name="subscription_switch_preview",
    ),
]
