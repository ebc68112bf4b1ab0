"""
PaymentSource model for stored Stripe payment methods.

Rows mirror Stripe PaymentMethod objects attached to a customer. They are
kept in sync by payment_method.* and customer.updated webhooks and by the
billing_sync_payment_methods command.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class PaymentSource(UUIDPrimaryKeyMixin, BaseModel):
    """
    A payment method saved for a user.

    Fields:
        user: Owner
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        token: Stripe PaymentMethod ID (pm_xxx) or legacy source ID
        description: Human-readable summary, e.g. "Visa ending in 4242"
        response: Last payment method snapshot from Stripe
        is_primary: Customer's default payment method on Stripe
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payment_sources",
    )
    gateway_id = models.CharField(max_length=64, db_index=True)
    token = models.CharField(max_length=255, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")
    response = models.JSONField(default=dict, blank=True)
    is_primary = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Source"
        verbose_name_plural = "Payment Sources"

    def __str__(self) -> str:
        return self.description or self.token
