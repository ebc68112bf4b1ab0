"""
Invoice model storing Stripe invoice snapshots per subscription.

Invoices are upserted by Stripe reference. Local insertion order is not
chronological (history backfill and out-of-order webhooks), so display
code sorts by the snapshot's own "created" timestamp.
"""

from __future__ import annotations

from datetime import datetime

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.timestamps import from_stripe_timestamp


class Invoice(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stripe invoice belonging to a subscription.

    Fields:
        subscription: Local subscription the invoice bills
        reference: Stripe Invoice ID (in_xxx)
        invoice_data: Last invoice snapshot returned by Stripe
    """

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.CASCADE,
        related_name="invoices",
    )

    reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    invoice_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Invoice snapshot returned by Stripe",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"

    def __str__(self) -> str:
        return f"Invoice({self.reference})"

    @property
    def stripe_created(self) -> datetime | None:
        """When Stripe created the invoice, falling back to the legacy "date"."""
        data = self.invoice_data or {}
        return from_stripe_timestamp(data.get("created") or data.get("date"))
