"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature with the gateway's signing secret
2. Records the delivery on a WebhookEvent row
3. Dispatches the event to its handler
4. Always answers 200 "ok"

Stripe redelivers any non-2xx answer, so failures are logged and recorded
on the WebhookEvent row instead of being returned to Stripe.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/<slug:gateway_handle>/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.exceptions import InvalidConfigError, WebhookVerificationError
from billing.gateways import get_gateway
from billing.hooks import webhook_received
from billing.models import WebhookEvent
from billing.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook


logger = logging.getLogger(__name__)


def _ok() -> HttpResponse:
    return HttpResponse("ok", status=200)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest, gateway_handle: str) -> HttpResponse:
    """
    Receive and process a Stripe webhook event for one gateway.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique; redeliveries reuse the row
      and bump delivery_count
    - Handlers upsert by Stripe reference, so reprocessing is safe

    Returns:
        HttpResponse 200 "ok" in every case
    """
    try:
        gateway = get_gateway(gateway_handle)
    except InvalidConfigError:
        logger.error(
            "Webhook received for unknown gateway",
            extra={"gateway_id": gateway_handle},
        )
        return _ok()

    signature = request.headers.get("Stripe-Signature", "")
    if not gateway.config.webhook_secret or not signature:
        logger.warning(
            "Webhook signing secret or Stripe-Signature header missing, skipping",
            extra={"gateway_id": gateway_handle},
        )
        return _ok()

    # Step 1: Verify signature and decode
    try:
        event_data = gateway.adapter.verify_webhook(request.body, signature)
    except WebhookVerificationError as e:
        logger.warning(
            e.message,
            extra={"gateway_id": gateway_handle, "error_code": e.error_code},
        )
        return _ok()

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning(
            "Webhook missing required fields",
            extra={"gateway_id": gateway_handle},
        )
        return _ok()

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "gateway_id": gateway_handle,
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
        },
    )

    # Step 2: Record the delivery
    webhook_event, _ = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "gateway_id": gateway_handle,
            "event_type": event_type,
            "payload": event_data,
        },
    )
    webhook_event.payload = event_data
    webhook_event.mark_processing()
    webhook_event.save()

    # Step 3: Dispatch
    if event_type not in WEBHOOK_HANDLERS:
        webhook_event.mark_ignored()
        webhook_event.save()
    else:
        try:
            with transaction.atomic():
                result = dispatch_webhook(webhook_event, gateway)
        except Exception as e:
            logger.exception(
                f"Webhook handler failed for {event_type}",
                extra={"gateway_id": gateway_handle, "stripe_event_id": stripe_event_id},
            )
            webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        else:
            if result.success:
                webhook_event.mark_processed()
            else:
                webhook_event.mark_failed(result.error or "Handler failed")
        webhook_event.save()

    # Step 4: Notify listeners
    webhook_received.send(
        sender=WebhookEvent,
        gateway_id=gateway_handle,
        payload=event_data,
    )

    return _ok()
