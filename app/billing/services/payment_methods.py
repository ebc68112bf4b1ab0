"""
Payment source synchronization.

Mirrors Stripe PaymentMethods of known customers into PaymentSource rows.
Payment methods of customers we have no local record of are ignored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.services import BaseService

from billing.exceptions import StripeResourceMissingError
from billing.models import PaymentSource, StripeCustomer

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter


def describe_payment_method(data: dict[str, Any]) -> str:
    """
    Human-readable summary of a payment method.

    Examples:
        "Visa ending in 4242"
        "Payment method ending in 6789"
    """
    method_type = data.get("type")
    details = data.get(method_type) if method_type else None

    if method_type == "card" and isinstance(details, dict):
        brand = details.get("brand") or "card"
        return f"{brand[:1].upper()}{brand[1:]} ending in {details.get('last4')}"
    if isinstance(details, dict) and details.get("last4"):
        return f"Payment method ending in {details['last4']}"
    return "Stripe payment source"


class PaymentMethodService(BaseService):
    """Keeps PaymentSource rows in step with Stripe for one gateway."""

    def __init__(self, gateway_id: str, adapter: StripeAdapter):
        self.gateway_id = gateway_id
        self.adapter = adapter

    def handle_payment_method_updated(self, data: dict[str, Any]) -> PaymentSource | None:
        """
        Upsert the PaymentSource for a Stripe PaymentMethod.

        Returns:
            The saved PaymentSource, or None if the owner is unknown
        """
        customer_reference = data.get("customer")
        if not customer_reference:
            return None

        customer = StripeCustomer.objects.filter(
            gateway_id=self.gateway_id,
            reference=customer_reference,
        ).select_related("user").first()
        if customer is None:
            return None

        try:
            remote_customer = self.adapter.retrieve_customer(customer_reference)
        except StripeResourceMissingError:
            return None
        if remote_customer.get("deleted"):
            return None

        with self.atomic():
            source = (
                PaymentSource.objects.select_for_update().filter(token=data["id"]).first()
                or PaymentSource(token=data["id"])
            )
            source.gateway_id = self.gateway_id
            source.user = customer.user
            source.response = data
            if source._state.adding or not source.description:
                source.description = describe_payment_method(data)
            source.save()

        self.get_logger().info(
            "Payment source saved",
            extra={"token": source.token, "customer": customer_reference},
        )
        return source

    def delete_payment_source_by_token(self, token: str) -> int:
        deleted, _ = PaymentSource.objects.filter(gateway_id=self.gateway_id, token=token).delete()
        return deleted

    def set_primary_from_customer(self, data: dict[str, Any]) -> PaymentSource | None:
        """
        Mark the customer's Stripe default payment method as the primary source.

        Uses invoice_settings.default_payment_method, falling back to the
        legacy default_source.
        """
        default = (data.get("invoice_settings") or {}).get("default_payment_method") or data.get(
            "default_source"
        )
        if not default:
            return None

        customer = StripeCustomer.objects.filter(
            gateway_id=self.gateway_id,
            reference=data.get("id"),
        ).first()
        if customer is None:
            return None

        source = PaymentSource.objects.filter(
            gateway_id=self.gateway_id,
            user_id=customer.user_id,
            token=default,
        ).first()
        if source is None or source.is_primary:
            return source

        with self.atomic():
            PaymentSource.objects.filter(user_id=customer.user_id, is_primary=True).update(is_primary=False)
            source.is_primary = True
            source.save(update_fields=["is_primary", "updated_at"])
        return source

    def sync_all_payment_methods(self) -> int:
        """
        Import the card payment methods of every Stripe customer.

        Returns:
            Number of payment methods processed
        """
        count = 0
        for customer in self.adapter.iter_customers():
            for payment_method in self.adapter.list_payment_methods(customer["id"], type="card"):
                self.handle_payment_method_updated(payment_method)
                count += 1

        self.get_logger().info(
            "Payment methods synced",
            extra={"gateway_id": self.gateway_id, "count": count},
        )
        return count
