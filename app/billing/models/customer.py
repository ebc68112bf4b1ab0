"""
StripeCustomer model linking a local user to a Stripe customer.

One row per (user, gateway). Rows are created lazily the first time a
user needs a Stripe customer, and recreated once if Stripe reports the
customer deleted.

Usage:
    from billing.services.customers import CustomerService

    customer = CustomerService(gateway).get_or_create(user)
    customer.reference  # "cus_xxx"
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class StripeCustomer(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's customer object on one Stripe gateway.

    Fields:
        user: Local user this customer belongs to
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        reference: Stripe Customer ID (cus_xxx)
        response: Last customer snapshot returned by Stripe
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="stripe_customers",
    )

    gateway_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Gateway handle from BILLING_GATEWAYS",
    )

    reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Customer snapshot returned by Stripe",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Stripe Customer"
        verbose_name_plural = "Stripe Customers"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "gateway_id"],
                name="billing_customer_unique_user_gateway",
            ),
        ]

    def __str__(self) -> str:
        return f"StripeCustomer({self.reference}, gateway={self.gateway_id})"
