"""
Idempotency keys for mutating Stripe calls.

Stripe treats a repeated idempotency key as a safe retry and returns the
original response instead of acting twice. Keys here are derived from
stable local identifiers so that user double-submits and webhook-driven
retries map onto the same key.

Key scheme:
    charge (authorize/purchase): transaction.hash
    refund:                      transaction.hash
    capture:                     payment intent reference
    confirm:                     "confirm:" + transaction.hash + ":" + payment method

Usage:
    from billing.idempotency import IdempotencyKeyGenerator

    key = IdempotencyKeyGenerator.for_charge(transaction)
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from billing.models import Transaction


class IdempotencyKeyGenerator:
    """
    Derive idempotency keys for Stripe API calls.

    All methods are static; keys depend only on their inputs.
    """

    @staticmethod
    def derive(
        order_id: int | str | None,
        gateway_id: str,
        customer_reference: str | None,
        transaction_id: int | str,
    ) -> str:
        """
        Build a stable key from the order, gateway, customer and transaction.

        Used for transactions that carry no hash of their own.

        Example:
            IdempotencyKeyGenerator.derive(42, "stripe", "cus_123", 7)
            # "txn:0b6f...e1" (sha256, truncated to 32 hex chars)
        """
        parts = [str(order_id or ""), gateway_id, customer_reference or "", str(transaction_id)]
        digest = hashlib.sha256(":".join(parts).encode()).hexdigest()[:32]
        return f"txn:{digest}"

    @classmethod
    def for_transaction(cls, transaction: Transaction) -> str:
        if transaction.hash:
            return transaction.hash
        return cls.derive(
            transaction.order_id,
            transaction.gateway_id,
            None,
            transaction.pk,
        )

    @classmethod
    def for_charge(cls, transaction: Transaction) -> str:
        return cls.for_transaction(transaction)

    @classmethod
    def for_refund(cls, transaction: Transaction) -> str:
        # Retries of the same logical refund must not refund twice
        return cls.for_transaction(transaction)

    @classmethod
    def for_confirm(cls, transaction: Transaction, payment_method_id: str) -> str:
        # A retry with a new card must not replay the previous card's decline
        return f"confirm:{cls.for_transaction(transaction)}:{payment_method_id}"

    @staticmethod
    def for_capture(reference: str) -> str:
        return reference
