"""
WebhookEvent model for Stripe webhook audit and observability.

One row per Stripe event id. The row records what arrived and how the
handler fared; it is not what makes processing idempotent. Handlers
upsert by Stripe reference and are safe to run again on re-delivery.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_123",
        defaults={
            "gateway_id": "stripe",
            "event_type": "invoice.payment_succeeded",
            "payload": payload,
        },
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A Stripe webhook delivery and its processing outcome.

    Fields:
        stripe_event_id: Stripe Event ID (evt_xxx)
        gateway_id: Gateway whose endpoint received the event
        event_type: Type of webhook event
        payload: Decoded JSON payload
        status: Processing status
        processed_at: When the handler last finished successfully
        error_message: Error details if processing failed
        delivery_count: Number of times Stripe delivered the event
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx)",
    )

    gateway_id = models.CharField(max_length=64, db_index=True)

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'invoice.payment_succeeded')",
    )

    payload = models.JSONField(help_text="Decoded webhook payload")

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    delivery_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_webhook_status_idx"),
            models.Index(fields=["event_type", "created_at"], name="billing_webhook_type_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PROCESSING
        self.delivery_count += 1

    def mark_processed(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_ignored(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.IGNORED
        self.processed_at = timezone.now()

    def mark_failed(self, error_message: str) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return payload.data.object, or an empty dict for malformed payloads."""
        try:
            obj = self.payload.get("data", {}).get("object", {})
        except (AttributeError, TypeError):
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
