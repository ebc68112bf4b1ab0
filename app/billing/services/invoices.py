"""
Invoice reconciliation.

Turns Stripe invoice webhooks into local Invoice rows and subscription
payments:

    invoice.created            optionally pay it right away
    invoice.payment_succeeded  upsert the invoice, advance the billing period

The first paid invoice of a new subscription often arrives before the
local subscription row is committed. The lookup therefore retries a few
times with a short fixed delay before giving up.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.services import BaseService

from billing.currency import from_minor_units
from billing.exceptions import StripeError, SubscriptionError
from billing.hooks import HookContext, invoice_created, invoice_saved
from billing.models import Invoice, Subscription
from billing.timestamps import from_stripe_timestamp

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter
    from billing.gateways.config import GatewayConfig

logger = logging.getLogger(__name__)

SUBSCRIPTION_LOOKUP_ATTEMPTS = 5
SUBSCRIPTION_LOOKUP_DELAY_SECONDS = 1


@dataclass
class SubscriptionPayment:
    """
    One billing-cycle payment derived from a Stripe invoice.

    Attributes:
        amount: Amount due in major units
        currency: ISO 4217 code (upper case)
        payment_date: When Stripe created the invoice
        reference: Charge that paid the invoice
        paid: Whether the invoice is paid
        response: Raw invoice snapshot
    """

    amount: Decimal
    currency: str
    payment_date: datetime | None
    reference: str | None
    paid: bool
    response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_invoice(cls, data: dict[str, Any]) -> SubscriptionPayment:
        """
        Build a payment from an invoice snapshot.

        Raises:
            UnsupportedCurrencyError: The invoice currency is unknown
        """
        currency = (data.get("currency") or "").upper()
        return cls(
            amount=from_minor_units(data.get("amount_due") or 0, currency),
            currency=currency,
            payment_date=from_stripe_timestamp(data.get("created") or data.get("date")),
            reference=data.get("charge"),
            paid=bool(data.get("paid")),
            response=data,
        )


def save_invoice(invoice_data: dict[str, Any], subscription: Subscription) -> Invoice:
    """
    Upsert an invoice by Stripe reference.

    The subscription link is only set when the row is first inserted.
    Receivers of invoice_saved can veto the write with context.reject.
    """
    invoice = (
        Invoice.objects.select_for_update().filter(reference=invoice_data["id"]).first()
        or Invoice(reference=invoice_data["id"], subscription=subscription)
    )
    invoice.invoice_data = invoice_data

    context = HookContext()
    invoice_saved.send(sender=Invoice, invoice=invoice, context=context)
    if context.reject:
        logger.info(
            "Invoice save rejected by receiver",
            extra={"invoice_id": invoice.reference},
        )
        return invoice

    invoice.save()
    return invoice


class InvoiceService(BaseService):
    """Reconciles Stripe invoices for one gateway."""

    def __init__(self, config: GatewayConfig, adapter: StripeAdapter):
        self.config = config
        self.adapter = adapter

    def handle_invoice_created(self, invoice_data: dict[str, Any]) -> bool:
        """
        Announce a new invoice and pay it now when configured to.

        Paying is best-effort: Stripe retries collection on its own
        schedule, so failures are logged and not retried here.

        Returns:
            True if an immediate payment was attempted and succeeded
        """
        invoice_created.send(
            sender=self.__class__,
            gateway_id=self.config.handle,
            invoice=invoice_data,
        )

        collection = invoice_data.get("billing") or invoice_data.get("collection_method")
        can_be_paid = not invoice_data.get("paid") and collection == "charge_automatically"

        if not (self.config.charge_invoices_immediately and can_be_paid):
            return False

        try:
            self.adapter.pay_invoice(
                invoice_data["id"],
                idempotency_key=f"pay:{invoice_data['id']}",
            )
        except StripeError:
            self.get_logger().warning(
                "Immediate invoice payment failed",
                extra={"invoice_id": invoice_data["id"]},
                exc_info=True,
            )
            return False
        return True

    def handle_invoice_succeeded(self, invoice_data: dict[str, Any]) -> Invoice | None:
        """
        Record a paid invoice and advance its subscription.

        Replaying the same payload leaves one Invoice row and the same
        next payment date.

        Returns:
            The saved Invoice, or None for unpaid invoices

        Raises:
            SubscriptionError: No local subscription after all lookup attempts
        """
        if not invoice_data.get("paid"):
            return None

        reference = invoice_data.get("subscription")
        subscription = self.find_subscription_with_retry(reference)

        if subscription is None:
            raise SubscriptionError(
                f"Subscription with the reference {reference} not found for invoice {invoice_data.get('id')}",
                details={"subscription": reference, "invoice_id": invoice_data.get("id")},
            )

        with self.atomic():
            invoice = save_invoice(invoice_data, subscription)

        remote = self.adapter.retrieve_subscription(reference)
        payment = SubscriptionPayment.from_invoice(invoice.invoice_data)
        subscription.receive_payment(
            payment,
            from_stripe_timestamp(remote.get("current_period_end")),
        )

        self.get_logger().info(
            "Recorded subscription payment",
            extra={
                "subscription": reference,
                "invoice_id": invoice.reference,
                "amount": str(payment.amount),
                "currency": payment.currency,
            },
        )
        return invoice

    def find_subscription_with_retry(self, reference: str | None) -> Subscription | None:
        """
        Look up a subscription, waiting briefly between attempts.

        Absorbs the race where Stripe's invoice webhook beats the local
        commit of the subscription it belongs to.
        """
        if not reference:
            return None

        for attempt in range(1, SUBSCRIPTION_LOOKUP_ATTEMPTS + 1):
            subscription = self._find_subscription(reference)
            if subscription is not None:
                return subscription
            if attempt < SUBSCRIPTION_LOOKUP_ATTEMPTS:
                self.get_logger().info(
                    "Subscription not visible yet, retrying",
                    extra={"subscription": reference, "attempt": attempt},
                )
                time.sleep(SUBSCRIPTION_LOOKUP_DELAY_SECONDS)
        return None

    @staticmethod
    def _find_subscription(reference: str) -> Subscription | None:
        return Subscription.objects.filter(reference=reference).first()
