"""
Subscription management and reconciliation.

SubscriptionService keeps local Subscription rows in step with Stripe:

    - customer.subscription.updated / deleted webhooks
    - invoice.payment_failed (refresh from Stripe)
    - plan switches with proration and switch-cost previews
    - cancel / reactivate
    - payment history and billing issue reporting

Usage:
    service = SubscriptionService(config, adapter)
    service.switch_plan(subscription, new_plan, prorate=True, bill_immediately=True)
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.services import BaseService

from billing.currency import from_minor_units, is_supported
from billing.exceptions import StripeError, SubscriptionError
from billing.models import Plan, Subscription
from billing.services.invoices import SubscriptionPayment, save_invoice
from billing.services.subscription_status import apply_subscription_status
from billing.state_machines import StripeSubscriptionStatus
from billing.timestamps import from_stripe_timestamp, to_stripe_timestamp

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter
    from billing.gateways.config import GatewayConfig

EXPAND_LATEST_PAYMENT = ["latest_invoice.payment_intent"]
INVOICE_PAGE_SIZE = 50

BILLING_ISSUE_SUBSCRIPTION_STATUSES = (
    StripeSubscriptionStatus.INCOMPLETE,
    StripeSubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.UNPAID,
)

BILLING_ISSUE_INTENT_STATUSES = (
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
)


def _first_item(data: dict[str, Any]) -> dict[str, Any]:
    items = (data.get("items") or {}).get("data") or []
    if not items:
        raise SubscriptionError(
            "Stripe subscription has no items",
            details={"subscription": data.get("id")},
        )
    return items[0]


class SubscriptionService(BaseService):
    """Subscription operations against one Stripe gateway."""

    def __init__(self, config: GatewayConfig, adapter: StripeAdapter):
        self.config = config
        self.adapter = adapter

    # =========================================================================
    # Webhook Handlers
    # =========================================================================

    def handle_subscription_updated(self, data: dict[str, Any]) -> Subscription | None:
        """
        Reconcile a subscription from a customer.subscription.updated event.

        Prefers a fresh expanded copy from Stripe so latest_invoice carries
        its payment intent; falls back to the event payload.
        """
        logger = self.get_logger()
        subscription = Subscription.objects.filter(reference=data.get("id")).first()
        if subscription is None:
            logger.warning(
                "Subscription not found for update",
                extra={"subscription": data.get("id")},
            )
            return None

        try:
            data = self.adapter.retrieve_subscription(data["id"], expand=EXPAND_LATEST_PAYMENT)
        except StripeError:
            logger.warning(
                "Could not refresh subscription, using event payload",
                extra={"subscription": subscription.reference},
                exc_info=True,
            )

        subscription.subscription_data = data
        apply_subscription_status(subscription, data)

        plan_reference = (data.get("plan") or {}).get("id")
        if not plan_reference:
            logger.warning(
                "Subscription has no single plan, keeping current plan",
                extra={"subscription": subscription.reference},
            )
        else:
            plan = Plan.objects.filter(
                gateway_id=self.config.handle,
                reference=plan_reference,
            ).first()
            if plan is None:
                logger.warning(
                    "Subscription switched to an unknown plan",
                    extra={"subscription": subscription.reference, "plan": plan_reference},
                )
            else:
                subscription.plan = plan

        subscription.save()
        logger.info(
            "Subscription updated",
            extra={"subscription": subscription.reference, "status": data.get("status")},
        )
        return subscription

    def handle_subscription_expired(self, data: dict[str, Any]) -> Subscription | None:
        subscription = Subscription.objects.filter(reference=data.get("id")).first()
        if subscription is None:
            self.get_logger().warning(
                "Subscription not found for expiry",
                extra={"subscription": data.get("id")},
            )
            return None

        subscription.mark_expired(timezone.now())
        subscription.save()
        return subscription

    def handle_invoice_failed(self, invoice_data: dict[str, Any]) -> Subscription | None:
        """Refresh the subscription behind an unpaid invoice."""
        if invoice_data.get("paid"):
            return None

        reference = invoice_data.get("subscription")
        subscription = Subscription.objects.filter(reference=reference).first()
        if subscription is None:
            self.get_logger().warning(
                "Subscription not found for failed invoice",
                extra={"subscription": reference, "invoice_id": invoice_data.get("id")},
            )
            return None

        return self.refresh_subscription_data(subscription)

    def refresh_subscription_data(self, subscription: Subscription) -> Subscription:
        """Pull the expanded subscription from Stripe and re-derive its status."""
        data = self.adapter.retrieve_subscription(
            subscription.reference,
            expand=EXPAND_LATEST_PAYMENT,
        )
        subscription.subscription_data = data
        apply_subscription_status(subscription, data)
        subscription.save()
        return subscription

    # =========================================================================
    # Plan Switching
    # =========================================================================

    def switch_plan(
        self,
        subscription: Subscription,
        plan: Plan,
        prorate: bool = False,
        bill_immediately: bool = False,
        billing_cycle_anchor: str | datetime | None = None,
        quantity: int | None = None,
        proration_date: datetime | None = None,
    ) -> Subscription:
        """
        Move a subscription to another plan.

        Proration behavior:
            not prorating                    none
            prorating, billing immediately   always_invoice
            prorating                        create_prorations

        Raises:
            StripeError: Stripe rejected the switch
        """
        logger = self.get_logger()
        remote = self.adapter.retrieve_subscription(subscription.reference)
        item = _first_item(remote)

        params: dict[str, Any] = {
            "items": [
                {
                    "id": item["id"],
                    "plan": plan.reference,
                    "quantity": quantity or item.get("quantity"),
                },
            ],
        }

        if not prorate:
            params["proration_behavior"] = "none"
        elif bill_immediately:
            params["proration_behavior"] = "always_invoice"
        else:
            params["proration_behavior"] = "create_prorations"

        if billing_cycle_anchor:
            params["billing_cycle_anchor"] = (
                to_stripe_timestamp(billing_cycle_anchor)
                if isinstance(billing_cycle_anchor, datetime)
                else billing_cycle_anchor
            )
        if proration_date:
            params["proration_date"] = to_stripe_timestamp(proration_date)

        data = self.adapter.modify_subscription(subscription.reference, params)

        if bill_immediately and not subscription.is_on_trial:
            try:
                self.adapter.create_invoice(
                    customer=data.get("customer"),
                    subscription=subscription.reference,
                )
            except StripeError:
                # Stripe may have nothing to invoice after the switch.
                logger.warning(
                    "Could not invoice plan switch immediately",
                    extra={"subscription": subscription.reference},
                    exc_info=True,
                )

        subscription.subscription_data = data
        apply_subscription_status(subscription, data)
        subscription.plan = plan
        subscription.save()

        logger.info(
            "Subscription plan switched",
            extra={
                "subscription": subscription.reference,
                "plan": plan.reference,
                "proration_behavior": params["proration_behavior"],
            },
        )
        return subscription

    def preview_switch_cost(self, subscription: Subscription, plan: Plan) -> Decimal | int:
        """
        Cost of switching to a plan right now.

        Returns:
            The preview total in major units, or the raw total when the
            currency is not supported
        """
        remote = self.adapter.retrieve_subscription(subscription.reference)
        item = _first_item(remote)

        preview = self.adapter.preview_invoice(
            customer=remote.get("customer"),
            subscription=subscription.reference,
            items=[{"id": item["id"], "plan": plan.reference}],
        )

        total = preview.get("total") or 0
        currency = (preview.get("currency") or "").upper()
        if not is_supported(currency):
            return total
        return from_minor_units(total, currency)

    # =========================================================================
    # Cancel / Reactivate
    # =========================================================================

    def cancel_subscription(self, subscription: Subscription, immediately: bool = False) -> Subscription:
        """
        Cancel now, or at the end of the current period.

        Raises:
            SubscriptionError: Stripe rejected the cancellation
        """
        try:
            if immediately:
                data = self.adapter.cancel_subscription(subscription.reference)
            else:
                data = self.adapter.modify_subscription(
                    subscription.reference,
                    {"cancel_at_period_end": True},
                )
        except StripeError as e:
            raise SubscriptionError(
                f"Failed to cancel subscription: {e.message}",
                details={"subscription": subscription.reference},
            ) from e

        subscription.subscription_data = data
        apply_subscription_status(subscription, data)
        subscription.save()
        return subscription

    def reactivate_subscription(self, subscription: Subscription) -> Subscription:
        """Undo a pending end-of-period cancellation on the current plan."""
        remote = self.adapter.retrieve_subscription(subscription.reference)
        item = _first_item(remote)

        data = self.adapter.modify_subscription(
            subscription.reference,
            {
                "items": [{"id": item["id"], "plan": subscription.plan.reference}],
                "cancel_at_period_end": False,
            },
        )

        subscription.subscription_data = data
        apply_subscription_status(subscription, data)
        subscription.save()
        return subscription

    # =========================================================================
    # Payments
    # =========================================================================

    def refresh_payment_history(self, subscription: Subscription) -> int:
        """
        Re-import every invoice of a subscription from Stripe.

        Returns:
            Number of invoices saved
        """
        remote = self.adapter.retrieve_subscription(subscription.reference)
        subscription.next_payment_date = from_stripe_timestamp(remote.get("current_period_end"))
        subscription.save(update_fields=["next_payment_date", "updated_at"])

        saved = 0
        starting_after = None
        while True:
            page = self.adapter.list_invoices(
                subscription.reference,
                limit=INVOICE_PAGE_SIZE,
                starting_after=starting_after,
            )
            invoices = page.get("data") or []
            for invoice_data in invoices:
                with self.atomic():
                    save_invoice(invoice_data, subscription)
                saved += 1

            if not page.get("has_more") or not invoices:
                break
            starting_after = invoices[-1]["id"]

        self.get_logger().info(
            "Payment history refreshed",
            extra={"subscription": subscription.reference, "invoices": saved},
        )
        return saved

    def get_subscription_payments(self, subscription: Subscription) -> list[SubscriptionPayment]:
        """Payments from the stored invoices, newest first."""
        payments = []
        for invoice in subscription.invoices.all():
            data = invoice.invoice_data or {}
            currency = (data.get("currency") or "").upper()
            if not is_supported(currency):
                self.get_logger().warning(
                    "Unsupported currency, skipping invoice",
                    extra={"currency": currency, "invoice_id": invoice.reference},
                )
                continue
            payments.append(SubscriptionPayment.from_invoice(data))

        payments.sort(
            key=lambda payment: payment.payment_date or datetime.min.replace(tzinfo=dt_timezone.utc),
            reverse=True,
        )
        return payments

    def get_next_payment_amount(self, subscription: Subscription) -> str:
        """Plan price as "<amount> <CURRENCY>", or "0" for unsupported currencies."""
        plan = (subscription.subscription_data or {}).get("plan") or {}
        currency = (plan.get("currency") or "").upper()
        if not is_supported(currency):
            self.get_logger().warning(
                "Unsupported currency",
                extra={"currency": currency, "subscription": subscription.reference},
            )
            return "0"
        amount = from_minor_units(plan.get("amount") or 0, currency)
        return f"{amount} {currency}"

    # =========================================================================
    # Billing Issues
    # =========================================================================

    def has_billing_issues(self, subscription: Subscription) -> bool:
        """True when Stripe is waiting on the payer to fix the latest payment."""
        self.refresh_subscription_data(subscription)
        data = subscription.subscription_data or {}

        if data.get("status") not in BILLING_ISSUE_SUBSCRIPTION_STATUSES:
            return False
        return self._latest_intent_status(data) in BILLING_ISSUE_INTENT_STATUSES

    def get_billing_issue_description(self, subscription: Subscription) -> str:
        """Short payer-facing explanation of the current billing issue."""
        intent_status = self._latest_intent_status(subscription.subscription_data or {})
        action = "resume" if subscription.has_started else "start"

        if intent_status == "requires_payment_method":
            return f"To {action} the subscription, please provide a valid payment method."
        if intent_status == "requires_action":
            return f"To {action} the subscription, please complete 3DS authentication."
        return ""

    @staticmethod
    def _latest_intent_status(data: dict[str, Any]) -> str | None:
        latest_invoice = data.get("latest_invoice")
        if not isinstance(latest_invoice, dict):
            return None
        intent = latest_invoice.get("payment_intent")
        if not isinstance(intent, dict):
            return None
        return intent.get("status")
