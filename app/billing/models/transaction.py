"""
Transaction model for gateway requests tied to orders.

Transactions belong to the host order system. Billing code reads their
amount, currency and hash, and moves their status through django-fsm
transitions once Stripe answers.

Usage:
    transaction = Transaction.objects.create(
        user=user,
        gateway_id="stripe",
        type=TransactionType.PURCHASE,
        amount=Decimal("19.99"),
        currency="USD",
        order_id=42,
        order_number="a1b2c3",
        hash="abc123",
    )

    result = orchestrator.authorize_or_purchase(transaction, "pm_xxx")
    orchestrator.apply_result(transaction, result)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import TransactionStatus, TransactionType

OPEN_STATES = [
    TransactionStatus.PENDING,
    TransactionStatus.REDIRECT,
    TransactionStatus.PROCESSING,
]


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single gateway request for an order.

    Amount, currency and hash are set by the host at creation and never
    changed by billing code.

    Fields:
        user: Payer (optional for guest checkouts)
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        parent: Transaction this one captures or refunds
        type: authorize, purchase, capture or refund
        status: Current FSM state
        amount / currency: Requested amount in major units
        order_id / order_number: Host order identifiers
        hash: Stable token, doubles as the idempotency key
        reference: Stripe object ID (pi_xxx, re_xxx)
        code / message / response: Last gateway answer
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="billing_transactions",
    )

    gateway_id = models.CharField(max_length=64, db_index=True)

    parent = models.ForeignKey(
        "self",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="children",
    )

    type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
    )

    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        help_text="Current state of the transaction (managed by FSM)",
    )

    amount = models.DecimalField(max_digits=14, decimal_places=4)
    currency = models.CharField(max_length=3)

    order_id = models.PositiveBigIntegerField(null=True, blank=True, db_index=True)
    order_number = models.CharField(max_length=64, blank=True, default="")

    hash = models.CharField(
        max_length=64,
        unique=True,
        help_text="Stable transaction token used as the idempotency key",
    )

    reference = models.CharField(max_length=255, blank=True, default="", db_index=True)
    code = models.CharField(max_length=255, blank=True, default="")
    message = models.TextField(blank=True, default="")
    response = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["gateway_id", "reference"], name="billing_txn_gateway_ref_idx"),
        ]

    def __str__(self) -> str:
        return f"Transaction({self.type}, {self.amount} {self.currency}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.REDIRECT,
    )
    def mark_redirect(self) -> None:
        """Payer must complete an extra step (3-D Secure, new payment method)."""

    @transition(
        field=status,
        source=OPEN_STATES,
        target=TransactionStatus.PROCESSING,
    )
    def mark_processing(self) -> None:
        """Accepted by Stripe but not settled yet."""

    @transition(
        field=status,
        source=OPEN_STATES,
        target=TransactionStatus.SUCCESS,
    )
    def mark_success(self) -> None:
        pass

    @transition(
        field=status,
        source=OPEN_STATES,
        target=TransactionStatus.FAILED,
    )
    def mark_failed(self) -> None:
        pass
