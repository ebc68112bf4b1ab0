"""
Gateway configuration loaded from settings.BILLING_GATEWAYS.

Each handle maps to one GatewayConfig. Configs are immutable; a changed
API key means a new config and therefore a new adapter instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings

from billing.exceptions import InvalidConfigError
from billing.state_machines import GatewayType


@dataclass(frozen=True)
class GatewayConfig:
    """
    Settings for one Stripe gateway.

    Attributes:
        handle: Key in BILLING_GATEWAYS, stored as gateway_id on records
        type: Gateway variant (payment_intents or subscription)
        secret_key: Stripe secret API key
        webhook_secret: Webhook signing secret (empty disables verification)
        webhook_tolerance: Max signature age in seconds
        api_version: Stripe API version sent with every request
        timeout: HTTP timeout in seconds
        max_retries: Network retries done by the Stripe client
        charge_invoices_immediately: Pay new invoices right away
        send_receipt_email: Ask Stripe to email receipts
        publishable_key: Public key for the checkout front end
    """

    handle: str
    type: str = GatewayType.SUBSCRIPTION
    secret_key: str = ""
    webhook_secret: str = ""
    webhook_tolerance: int = 300
    api_version: str = "2024-09-30.acacia"
    timeout: int = 10
    max_retries: int = 3
    charge_invoices_immediately: bool = False
    send_receipt_email: bool = False
    publishable_key: str = ""

    @classmethod
    def from_dict(cls, handle: str, data: dict[str, Any]) -> GatewayConfig:
        known = {name for name in cls.__dataclass_fields__ if name != "handle"}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfigError(
                f"Unknown options for gateway '{handle}': {', '.join(sorted(unknown))}",
                details={"gateway": handle},
            )
        return cls(handle=handle, **data)

    @classmethod
    def load(cls, handle: str) -> GatewayConfig:
        """
        Load a gateway config from settings.

        Raises:
            InvalidConfigError: Handle not configured
        """
        gateways = getattr(settings, "BILLING_GATEWAYS", {})
        if handle not in gateways:
            raise InvalidConfigError(
                f"Gateway '{handle}' is not configured",
                details={"gateway": handle},
            )
        return cls.from_dict(handle, dict(gateways[handle]))
