"""
PaymentIntentRecord model mirroring Stripe payment intents.

Maps (gateway, customer, transaction hash) to the Stripe PaymentIntent
created for that transaction, plus the last snapshot Stripe returned.
A second checkout attempt for the same transaction updates the existing
intent instead of creating a new one.

Write through PaymentIntentRepository, which enforces the invariants
before touching the database.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class PaymentIntentRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Local record of a Stripe PaymentIntent.

    Invariants:
        - at most one row per (gateway_id, customer, transaction_hash)
        - reference is unique across all rows once set

    Fields:
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        customer: Stripe customer the intent was created for
        reference: Stripe PaymentIntent ID (pi_xxx)
        transaction_hash: Hash of the transaction that created the intent
        intent_data: Last intent snapshot returned by Stripe
    """

    gateway_id = models.CharField(
        max_length=64,
        help_text="Gateway handle from BILLING_GATEWAYS",
    )

    customer = models.ForeignKey(
        "billing.StripeCustomer",
        on_delete=models.CASCADE,
        related_name="payment_intents",
    )

    reference = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    transaction_hash = models.CharField(
        max_length=64,
        help_text="Hash of the originating transaction",
    )

    intent_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="PaymentIntent snapshot returned by Stripe",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Intent"
        verbose_name_plural = "Payment Intents"
        constraints = [
            models.UniqueConstraint(
                fields=["gateway_id", "customer", "transaction_hash"],
                name="billing_intent_unique_gateway_customer_hash",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentIntentRecord({self.reference}, hash={self.transaction_hash})"

    @property
    def status(self) -> str | None:
        return (self.intent_data or {}).get("status")

    @property
    def latest_charge(self) -> str | None:
        """Charge id of the last attempt; older API versions nest it under charges.data."""
        data = self.intent_data or {}
        if data.get("latest_charge"):
            charge = data["latest_charge"]
            return charge.get("id") if isinstance(charge, dict) else charge
        charges = (data.get("charges") or {}).get("data") or []
        return charges[0].get("id") if charges else None
