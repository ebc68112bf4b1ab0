"""
Capability protocols for Stripe gateway variants.

A gateway variant advertises what it can do by implementing one or more of
these protocols. Callers check capabilities with isinstance() instead of
asking the gateway for "supports_*" flags.

Usage:
    from billing.gateways import get_gateway
    from billing.gateways.protocols import SubscriptionCapable

    gateway = get_gateway("stripe")
    if isinstance(gateway, SubscriptionCapable):
        gateway.switch_plan(subscription, plan, prorate=True)
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from billing.models import PaymentSource, Plan, Subscription, Transaction
    from billing.services.invoices import SubscriptionPayment
    from billing.services.responses import RequestResult


@runtime_checkable
class ChargeCapable(Protocol):
    """One-off charges through PaymentIntents."""

    def authorize_or_purchase(
        self,
        transaction: Transaction,
        payment_method_id: str,
        capture: bool = True,
        customer_reference: str | None = None,
        client_ip: str | None = None,
    ) -> RequestResult: ...

    def complete_purchase(self, transaction: Transaction) -> RequestResult: ...

    def capture(self, transaction: Transaction, reference: str) -> RequestResult: ...

    def refund(self, transaction: Transaction) -> RequestResult: ...

    def apply_result(self, transaction: Transaction, result: RequestResult) -> Transaction: ...


@runtime_checkable
class SubscriptionCapable(Protocol):
    """Recurring billing through Stripe Subscriptions."""

    def switch_plan(
        self,
        subscription: Subscription,
        plan: Plan,
        prorate: bool = False,
        bill_immediately: bool = False,
        billing_cycle_anchor: Any = None,
        quantity: int | None = None,
        proration_date: Any = None,
    ) -> Subscription: ...

    def preview_switch_cost(self, subscription: Subscription, plan: Plan) -> Decimal | int: ...

    def cancel_subscription(self, subscription: Subscription, immediately: bool = False) -> Subscription: ...

    def reactivate_subscription(self, subscription: Subscription) -> Subscription: ...

    def refresh_payment_history(self, subscription: Subscription) -> int: ...

    def get_subscription_payments(self, subscription: Subscription) -> list[SubscriptionPayment]: ...


@runtime_checkable
class PaymentMethodCapable(Protocol):
    """Mirroring of saved payment methods."""

    def handle_payment_method_updated(self, data: dict[str, Any]) -> PaymentSource | None: ...

    def sync_all_payment_methods(self) -> int: ...
