"""
DRF views for billing app.

Endpoints:
    GET /billing/subscriptions/<uuid>/payments/ - Payment history
    GET /billing/subscriptions/<uuid>/switch-preview/?plan=<uuid> - Switch cost

Security:
    - All endpoints require authentication
    - Users only see their own subscriptions
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.exceptions import BillingError, StripeError
from billing.gateways import SubscriptionGateway, get_gateway
from billing.models import Plan, Subscription
from billing.serializers import (
    SubscriptionPaymentSerializer,
    SwitchPreviewQuerySerializer,
    SwitchPreviewSerializer,
)

logger = logging.getLogger(__name__)


class SubscriptionGatewayMixin:
    """Loads the caller's subscription and its subscription gateway."""

    def get_subscription(self, request, subscription_id) -> Subscription:
        return get_object_or_404(
            Subscription.objects.select_related("plan"),
            id=subscription_id,
            user=request.user,
        )

    def get_subscription_gateway(self, subscription: Subscription) -> SubscriptionGateway | None:
        gateway = get_gateway(subscription.gateway_id)
        return gateway if isinstance(gateway, SubscriptionGateway) else None


class SubscriptionPaymentsView(SubscriptionGatewayMixin, APIView):
    """
    List a subscription's payments, newest first.

    GET /billing/subscriptions/<uuid>/payments/
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, subscription_id):
        subscription = self.get_subscription(request, subscription_id)
        gateway = self.get_subscription_gateway(subscription)
        if gateway is None:
            return Response(
                {"detail": "Gateway does not support subscriptions"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        payments = gateway.get_subscription_payments(subscription)
        return Response(SubscriptionPaymentSerializer(payments, many=True).data)


class SwitchPreviewView(SubscriptionGatewayMixin, APIView):
    """
    Preview the cost of switching plans right now.

    GET /billing/subscriptions/<uuid>/switch-preview/?plan=<uuid>

    Returns:
        {"plan": "<uuid>", "amount": "12.5000"}
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, subscription_id):
        query = SwitchPreviewQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        subscription = self.get_subscription(request, subscription_id)
        plan = get_object_or_404(
            Plan,
            id=query.validated_data["plan"],
            gateway_id=subscription.gateway_id,
            is_enabled=True,
            is_archived=False,
        )

        gateway = self.get_subscription_gateway(subscription)
        if gateway is None:
            return Response(
                {"detail": "Gateway does not support subscriptions"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            amount = gateway.preview_switch_cost(subscription, plan)
        except (StripeError, BillingError) as e:
            logger.warning(
                "Switch preview failed",
                extra={"subscription": subscription.reference, "error_code": e.error_code},
            )
            return Response(e.to_dict(), status=status.HTTP_502_BAD_GATEWAY)

        return Response(SwitchPreviewSerializer({"plan": plan.id, "amount": amount}).data)
