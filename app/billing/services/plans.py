"""
Plan synchronization with Stripe.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.services import BaseService

from billing.exceptions import InvalidConfigError
from billing.models import Plan

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter


class PlanService(BaseService):
    """Plan webhooks and remote plan listing for one gateway."""

    def __init__(self, gateway_id: str, adapter: StripeAdapter):
        self.gateway_id = gateway_id
        self.adapter = adapter

    def handle_plan_event(self, event_type: str, data: dict[str, Any], event_id: str | None = None) -> Plan:
        """
        Apply plan.updated / plan.deleted to the local plan.

        Raises:
            InvalidConfigError: No local plan uses the Stripe plan
        """
        plan = Plan.objects.filter(gateway_id=self.gateway_id, reference=data.get("id")).first()
        if plan is None:
            raise InvalidConfigError(
                f"Plan with the reference {data.get('id')} not found when processing webhook {event_id}",
                details={"plan": data.get("id"), "event_id": event_id},
            )

        if event_type == "plan.deleted":
            plan.archive()
            plan.save(update_fields=["is_archived", "date_archived", "updated_at"])
            self.get_logger().warning(
                "Plan archived because it was deleted on Stripe",
                extra={"plan": plan.reference, "plan_name": plan.name, "event_id": event_id},
            )
        else:
            plan.plan_data = data
            plan.save(update_fields=["plan_data", "updated_at"])
        return plan

    def list_remote_plans(self) -> list[dict[str, str]]:
        """
        Plans available on Stripe, named after their product.

        Returns:
            [{"name": "Pro (monthly)", "reference": "plan_xxx"}, ...]
        """
        plans = self.adapter.list_plans(limit=100)
        if not plans:
            return []

        product_ids = list(dict.fromkeys(plan.get("product") for plan in plans if plan.get("product")))
        products = {product["id"]: product for product in self.adapter.list_products(product_ids)}

        output = []
        for plan in plans:
            name = (products.get(plan.get("product")) or {}).get("name", "")
            if plan.get("nickname") is not None:
                name = f"{name} ({plan['nickname']})"
            output.append({"name": name, "reference": plan["id"]})
        return output
