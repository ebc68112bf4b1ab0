"""
Concrete gateway variants.

A variant is a thin facade that wires one GatewayConfig to its adapter and
services and exposes the operations of the capabilities it supports.

    PaymentIntentsGateway   ChargeCapable, PaymentMethodCapable
    SubscriptionGateway     ChargeCapable, PaymentMethodCapable, SubscriptionCapable
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from billing.adapters import StripeAdapter
from billing.services.customers import CustomerService
from billing.services.invoices import InvoiceService
from billing.services.orchestrator import ChargeOrchestrator
from billing.services.payment_methods import PaymentMethodService
from billing.services.plans import PlanService
from billing.services.subscriptions import SubscriptionService

if TYPE_CHECKING:
    from billing.gateways.config import GatewayConfig
    from billing.models import PaymentSource, Plan, Subscription, Transaction
    from billing.services.invoices import SubscriptionPayment
    from billing.services.responses import RequestResult


class PaymentIntentsGateway:
    """One-off PaymentIntent charges and saved payment methods."""

    def __init__(self, config: GatewayConfig, adapter: StripeAdapter | None = None):
        self.config = config
        self.adapter = adapter or StripeAdapter(config)
        self.customers = CustomerService(config.handle, self.adapter)
        self.charges = ChargeOrchestrator(config, self.adapter, self.customers)
        self.payment_methods = PaymentMethodService(config.handle, self.adapter)

    @property
    def handle(self) -> str:
        return self.config.handle

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.config.handle!r})"

    # ChargeCapable

    def authorize_or_purchase(
        self,
        transaction: Transaction,
        payment_method_id: str,
        capture: bool = True,
        customer_reference: str | None = None,
        client_ip: str | None = None,
    ) -> RequestResult:
        return self.charges.authorize_or_purchase(
            transaction,
            payment_method_id,
            capture=capture,
            customer_reference=customer_reference,
            client_ip=client_ip,
        )

    def complete_purchase(self, transaction: Transaction) -> RequestResult:
        return self.charges.complete_purchase(transaction)

    def capture(self, transaction: Transaction, reference: str) -> RequestResult:
        return self.charges.capture(transaction, reference)

    def refund(self, transaction: Transaction) -> RequestResult:
        return self.charges.refund(transaction)

    def apply_result(self, transaction: Transaction, result: RequestResult) -> Transaction:
        return self.charges.apply_result(transaction, result)

    # PaymentMethodCapable

    def handle_payment_method_updated(self, data: dict[str, Any]) -> PaymentSource | None:
        return self.payment_methods.handle_payment_method_updated(data)

    def sync_all_payment_methods(self) -> int:
        return self.payment_methods.sync_all_payment_methods()


class SubscriptionGateway(PaymentIntentsGateway):
    """PaymentIntents plus Stripe Subscriptions, invoices and plans."""

    def __init__(self, config: GatewayConfig, adapter: StripeAdapter | None = None):
        super().__init__(config, adapter)
        self.invoices = InvoiceService(config, self.adapter)
        self.subscriptions = SubscriptionService(config, self.adapter)
        self.plans = PlanService(config.handle, self.adapter)

    # SubscriptionCapable

    def switch_plan(
        self,
        subscription: Subscription,
        plan: Plan,
        prorate: bool = False,
        bill_immediately: bool = False,
        billing_cycle_anchor: Any = None,
        quantity: int | None = None,
        proration_date: Any = None,
    ) -> Subscription:
        return self.subscriptions.switch_plan(
            subscription,
            plan,
            prorate=prorate,
            bill_immediately=bill_immediately,
            billing_cycle_anchor=billing_cycle_anchor,
            quantity=quantity,
            proration_date=proration_date,
        )

    def preview_switch_cost(self, subscription: Subscription, plan: Plan) -> Decimal | int:
        return self.subscriptions.preview_switch_cost(subscription, plan)

    def cancel_subscription(self, subscription: Subscription, immediately: bool = False) -> Subscription:
        return self.subscriptions.cancel_subscription(subscription, immediately=immediately)

    def reactivate_subscription(self, subscription: Subscription) -> Subscription:
        return self.subscriptions.reactivate_subscription(subscription)

    def refresh_payment_history(self, subscription: Subscription) -> int:
        return self.subscriptions.refresh_payment_history(subscription)

    def get_subscription_payments(self, subscription: Subscription) -> list[SubscriptionPayment]:
        return self.subscriptions.get_subscription_payments(subscription)
