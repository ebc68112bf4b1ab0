"""
Payment intent repository.

The single write path for PaymentIntentRecord. Both the checkout path and
the webhook path converge here, so the invariants enforced on upsert are
what keep the two consistent:

    - one row per (gateway_id, customer, transaction_hash)
    - a Stripe reference belongs to at most one row

Usage:
    record = PaymentIntentRepository.find("stripe", customer.pk, transaction.hash)
    if record is None:
        record = PaymentIntentRecord(gateway_id="stripe", customer=customer, ...)
    record.intent_data = intent
    PaymentIntentRepository.upsert(record)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError

from core.services import BaseService

from billing.exceptions import PaymentIntentValidationError
from billing.models import PaymentIntentRecord

if TYPE_CHECKING:
    from uuid import UUID


class PaymentIntentRepository(BaseService):
    """Lookup and validated upsert of PaymentIntentRecord rows."""

    @classmethod
    def find(
        cls,
        gateway_id: str,
        customer_id: UUID | str,
        transaction_hash: str,
    ) -> PaymentIntentRecord | None:
        return PaymentIntentRecord.objects.filter(
            gateway_id=gateway_id,
            customer_id=customer_id,
            transaction_hash=transaction_hash,
        ).first()

    @classmethod
    def find_by_reference(cls, reference: str) -> PaymentIntentRecord | None:
        if not reference:
            return None
        return PaymentIntentRecord.objects.filter(reference=reference).first()

    @classmethod
    def upsert(cls, record: PaymentIntentRecord) -> PaymentIntentRecord:
        """
        Insert a new record or update an existing one in place.

        Raises:
            PaymentIntentValidationError: A required field is missing on
                insert, or the reference already belongs to another row
        """
        is_insert = record._state.adding

        if is_insert:
            errors = cls.validate_required(
                gateway_id=record.gateway_id,
                customer_id=record.customer_id,
                reference=record.reference,
                transaction_hash=record.transaction_hash,
            )
            if record.intent_data is None or record.intent_data == {}:
                errors["intent_data"] = ["This field is required."]
            if errors:
                raise PaymentIntentValidationError(
                    "Missing required payment intent fields",
                    error_code="PAYMENT_INTENT_INCOMPLETE",
                    details=errors,
                )

        if record.reference:
            collision = (
                PaymentIntentRecord.objects.filter(reference=record.reference)
                .exclude(pk=record.pk)
                .exists()
            )
            if collision:
                raise PaymentIntentValidationError(
                    f"Reference {record.reference} already belongs to another payment intent",
                    error_code="DUPLICATE_REFERENCE",
                    details={"reference": ["Already in use."]},
                )

        try:
            with cls.atomic():
                if not is_insert:
                    # Writers touching the same record queue on its row lock
                    PaymentIntentRecord.objects.select_for_update().filter(pk=record.pk).first()
                record.save()
        except IntegrityError as e:
            # A concurrent writer won the unique key between the check and the save
            raise PaymentIntentValidationError(
                "Payment intent violates a uniqueness constraint",
                error_code="DUPLICATE_PAYMENT_INTENT",
                details={"error": [str(e)]},
            ) from e

        cls.get_logger().info(
            "Saved payment intent record",
            extra={
                "payment_intent_id": record.reference,
                "transaction_hash": record.transaction_hash,
                "record_created": is_insert,
            },
        )
        return record
