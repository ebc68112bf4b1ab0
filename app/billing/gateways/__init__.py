"""
Stripe gateway registry.

Gateways are configured in settings.BILLING_GATEWAYS, keyed by handle.
The "type" option picks the variant:

    payment_intents  PaymentIntentsGateway
    subscription     SubscriptionGateway (default)

Usage:
    from billing.gateways import get_gateway

    gateway = get_gateway("stripe")
    result = gateway.authorize_or_purchase(transaction, "pm_xxx")

Adding New Variants:
    1. Implement the capability protocols in gateways/protocols.py
    2. Add a GatewayType value
    3. Register the class in GATEWAY_VARIANTS below
"""

from __future__ import annotations

import logging

from billing.exceptions import InvalidConfigError
from billing.gateways.config import GatewayConfig
from billing.gateways.protocols import ChargeCapable, PaymentMethodCapable, SubscriptionCapable
from billing.gateways.variants import PaymentIntentsGateway, SubscriptionGateway
from billing.state_machines import GatewayType

logger = logging.getLogger(__name__)

# Maps GatewayType value to gateway class
GATEWAY_VARIANTS: dict[str, type[PaymentIntentsGateway]] = {
    GatewayType.PAYMENT_INTENTS: PaymentIntentsGateway,
    GatewayType.SUBSCRIPTION: SubscriptionGateway,
}

_gateways: dict[str, PaymentIntentsGateway] = {}


def get_gateway(handle: str) -> PaymentIntentsGateway:
    """
    Get the gateway instance for a handle, building it on first use.

    Raises:
        InvalidConfigError: Unknown handle or gateway type
    """
    gateway = _gateways.get(handle)
    if gateway is not None:
        return gateway

    config = GatewayConfig.load(handle)
    gateway_class = GATEWAY_VARIANTS.get(config.type)
    if gateway_class is None:
        raise InvalidConfigError(
            f"Unknown gateway type: {config.type}",
            details={"gateway": handle, "type": config.type},
        )

    gateway = gateway_class(config)
    _gateways[handle] = gateway
    logger.info(
        "Gateway initialized",
        extra={"gateway_id": handle, "type": config.type},
    )
    return gateway


def reset_gateways() -> None:
    """Drop cached gateways so the next lookup re-reads settings."""
    _gateways.clear()


__all__ = [
    "GATEWAY_VARIANTS",
    "ChargeCapable",
    "GatewayConfig",
    "PaymentIntentsGateway",
    "PaymentMethodCapable",
    "SubscriptionCapable",
    "SubscriptionGateway",
    "get_gateway",
    "reset_gateways",
]
