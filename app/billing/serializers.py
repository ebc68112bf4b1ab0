"""
DRF serializers for billing app.

This module provides serializers for:
- Subscription payment history
- Plan switch cost previews

Related files:
    - services/invoices.py: SubscriptionPayment
    - views.py: Billing API views

Usage:
    serializer = SubscriptionPaymentSerializer(payments, many=True)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers


class SubscriptionPaymentSerializer(serializers.Serializer):
    """
    One billing-cycle payment of a subscription.

    Fields:
        amount: Amount due in major units
        currency: ISO 4217 code
        payment_date: When Stripe created the invoice
        reference: Charge that paid the invoice
        paid: Whether the invoice is paid
    """

    amount = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True)
    currency = serializers.CharField(read_only=True)
    payment_date = serializers.DateTimeField(read_only=True, allow_null=True)
    reference = serializers.CharField(read_only=True, allow_null=True)
    paid = serializers.BooleanField(read_only=True)


class SwitchPreviewQuerySerializer(serializers.Serializer):
    plan = serializers.UUIDField()


class SwitchPreviewSerializer(serializers.Serializer):
    """
    Cost of switching a subscription to another plan right now.

    Fields:
        plan: Target plan ID
        amount: Preview total (major units when the currency is supported)
    """

    plan = serializers.UUIDField(read_only=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True)
