"""
Charge orchestration: authorize, purchase, capture and refund.

ChargeOrchestrator drives one checkout request end to end:

    1. Resolve the payer's Stripe customer
    2. Build the request (amount, currency, description, metadata)
    3. Update the transaction's existing PaymentIntent, or create one
    4. Persist the snapshot Stripe returned
    5. Confirm with a return URL for 3-D Secure
    6. Classify the result

Stripe declines come back as a failed RequestResult, never as an
exception. Unexpected failures raise GatewayError.

Usage:
    gateway = get_gateway("stripe")
    result = gateway.authorize_or_purchase(transaction, "pm_xxx", capture=True)
    gateway.apply_result(transaction, result)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.conf import settings
from django_fsm import can_proceed

from core.exceptions import BaseApplicationError
from core.services import BaseService

from billing.adapters import CreatePaymentIntentParams
from billing.currency import is_supported, to_minor_units
from billing.exceptions import CustomerError, GatewayError, NotSupportedError, StripeError
from billing.hooks import build_payment_request
from billing.idempotency import IdempotencyKeyGenerator
from billing.models import PaymentIntentRecord
from billing.services.payment_intents import PaymentIntentRepository
from billing.services.responses import RequestResult

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter
    from billing.gateways.config import GatewayConfig
    from billing.models import StripeCustomer, Transaction
    from billing.services.customers import CustomerService


class ChargeOrchestrator(BaseService):
    """Authorize/purchase/capture/refund against one Stripe gateway."""

    def __init__(
        self,
        config: GatewayConfig,
        adapter: StripeAdapter,
        customers: CustomerService,
    ):
        self.config = config
        self.adapter = adapter
        self.customers = customers

    # =========================================================================
    # Request Building
    # =========================================================================

    def build_request(self, transaction: Transaction, client_ip: str | None = None) -> dict[str, Any]:
        """
        Build the outbound PaymentIntent fields for a transaction.

        Receivers of build_payment_request may add metadata. Amount,
        currency, description and the core metadata keys are re-applied
        after the signal, so receivers cannot change them.
        """
        core_metadata: dict[str, Any] = {
            "order_id": transaction.order_id,
            "order_number": transaction.order_number,
            "transaction_id": str(transaction.pk),
            "transaction_reference": transaction.hash,
        }
        if client_ip:
            core_metadata["client_ip"] = client_ip

        core_fields: dict[str, Any] = {
            "amount": to_minor_units(transaction.amount, transaction.currency),
            "currency": transaction.currency.lower(),
            "description": f"Order #{transaction.order_id}",
        }

        request: dict[str, Any] = {**core_fields, "metadata": dict(core_metadata)}
        user_email = getattr(transaction.user, "email", None) if transaction.user_id else None
        if self.config.send_receipt_email and user_email:
            request["receipt_email"] = user_email

        build_payment_request.send(
            sender=self.__class__,
            transaction=transaction,
            request=request,
        )

        extra_metadata = request.get("metadata")
        if not isinstance(extra_metadata, dict):
            extra_metadata = {}
        request.update(core_fields)
        request["metadata"] = {**extra_metadata, **core_metadata}
        return request

    def _return_url(self, transaction: Transaction) -> str:
        return settings.BILLING_PAYMENT_RETURN_URL.format(
            transaction_id=transaction.pk,
            transaction_hash=transaction.hash,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def authorize_or_purchase(
        self,
        transaction: Transaction,
        payment_method_id: str,
        capture: bool = True,
        customer_reference: str | None = None,
        client_ip: str | None = None,
    ) -> RequestResult:
        """
        Authorize (capture=False) or purchase (capture=True) a transaction.

        A second attempt for the same transaction hash updates the stored
        PaymentIntent instead of creating another one, so a payer can retry
        with a new card after a decline.

        Raises:
            CustomerError: The payer's Stripe customer could not be resolved
            PaymentIntentValidationError: The local record could not be saved
            GatewayError: Any unexpected, unstructured failure
        """
        logger = self.get_logger()
        key = IdempotencyKeyGenerator.for_charge(transaction)

        try:
            customer = self._resolve_customer(transaction, customer_reference)
            request = self.build_request(transaction, client_ip)

            params = CreatePaymentIntentParams(
                amount=request["amount"],
                currency=request["currency"],
                idempotency_key=key,
                customer=customer.reference,
                payment_method=payment_method_id,
                description=request["description"],
                metadata=request["metadata"],
                capture_method="automatic" if capture else "manual",
                receipt_email=request.get("receipt_email"),
            )

            record = PaymentIntentRepository.find(self.config.handle, customer.pk, transaction.hash)

            if record and record.reference:
                intent = self.adapter.update_payment_intent(record.reference, params)
            else:
                intent = self.adapter.create_payment_intent(params)
                if record is None:
                    record = PaymentIntentRecord(
                        gateway_id=self.config.handle,
                        customer=customer,
                        transaction_hash=transaction.hash,
                    )
                record.reference = intent["id"]

            self._persist(record, intent)

            intent = self.adapter.confirm_payment_intent(
                intent["id"],
                return_url=self._return_url(transaction),
                idempotency_key=IdempotencyKeyGenerator.for_confirm(transaction, payment_method_id),
            )
            self._persist(record, intent)

        except StripeError as e:
            logger.warning(
                "Payment request declined",
                extra={
                    "transaction_id": str(transaction.pk),
                    "stripe_code": e.stripe_code,
                },
            )
            return RequestResult.from_error(e)
        except BaseApplicationError:
            raise
        except Exception as e:
            logger.error(
                "Unexpected error during payment request",
                extra={"transaction_id": str(transaction.pk)},
                exc_info=True,
            )
            raise GatewayError(
                f"Payment request failed: {e}",
                details={"transaction_id": str(transaction.pk)},
            ) from e

        return RequestResult.from_stripe_object(intent)

    def complete_purchase(self, transaction: Transaction) -> RequestResult:
        """
        Finish a payment after the payer returns from 3-D Secure.

        Confirms again when Stripe still waits for confirmation.
        """
        try:
            intent = self.adapter.retrieve_payment_intent(transaction.reference)
            record = PaymentIntentRepository.find_by_reference(transaction.reference)
            self._persist(record, intent)

            if intent.get("payment_method") and intent.get("status") == "requires_confirmation":
                intent = self.adapter.confirm_payment_intent(
                    intent["id"],
                    return_url=self._return_url(transaction),
                    idempotency_key=f"complete:{IdempotencyKeyGenerator.for_transaction(transaction)}",
                )
                self._persist(record, intent)
        except StripeError as e:
            return RequestResult.from_error(e)
        except BaseApplicationError:
            raise
        except Exception as e:
            raise GatewayError(f"Completing payment failed: {e}") from e

        return RequestResult.from_stripe_object(intent)

    def capture(self, transaction: Transaction, reference: str) -> RequestResult:
        """
        Capture an authorized PaymentIntent.

        An intent that already succeeded is reported as such without a
        second capture call.
        """
        try:
            intent = self.adapter.retrieve_payment_intent(reference)
            if intent.get("status") != "succeeded":
                intent = self.adapter.capture_payment_intent(
                    reference,
                    idempotency_key=IdempotencyKeyGenerator.for_capture(reference),
                )
            self._persist(PaymentIntentRepository.find_by_reference(reference), intent)
        except StripeError as e:
            return RequestResult.from_error(e)
        except BaseApplicationError:
            raise
        except Exception as e:
            raise GatewayError(
                f"Capture failed: {e}",
                details={"payment_intent_id": reference},
            ) from e

        return RequestResult.from_stripe_object(intent)

    def refund(self, transaction: Transaction) -> RequestResult:
        """
        Refund the charge behind a transaction's PaymentIntent.

        The refund transaction carries the amount; its parent (or itself,
        when standalone) carries the PaymentIntent reference.

        Raises:
            NotSupportedError: The transaction currency is unknown
        """
        if not is_supported(transaction.currency):
            raise NotSupportedError(
                f"Cannot refund in unsupported currency {transaction.currency}",
                details={"currency": transaction.currency},
            )

        reference = transaction.parent.reference if transaction.parent_id else transaction.reference

        try:
            refund = self.adapter.create_refund(
                reference,
                idempotency_key=IdempotencyKeyGenerator.for_refund(transaction),
                amount=to_minor_units(transaction.amount, transaction.currency),
                metadata={"transaction_id": str(transaction.pk)},
            )
            intent = self.adapter.retrieve_payment_intent(reference)
            self._persist(PaymentIntentRepository.find_by_reference(reference), intent)
        except StripeError as e:
            return RequestResult.from_error(e)
        except BaseApplicationError:
            raise
        except Exception as e:
            raise GatewayError(
                f"Refund failed: {e}",
                details={"payment_intent_id": reference},
            ) from e

        return RequestResult.from_stripe_object(refund)

    # =========================================================================
    # Transaction Updates
    # =========================================================================

    def apply_result(self, transaction: Transaction, result: RequestResult) -> Transaction:
        """Record a classified result on the transaction and move its status."""
        if result.reference:
            transaction.reference = result.reference
        transaction.code = result.code
        transaction.message = result.message
        transaction.response = result.data

        if result.successful:
            transition = transaction.mark_success
        elif result.processing:
            transition = transaction.mark_processing
        elif result.requires_redirect:
            transition = transaction.mark_redirect
        else:
            transition = transaction.mark_failed

        if can_proceed(transition):
            transition()
        transaction.save()
        return transaction

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_customer(
        self,
        transaction: Transaction,
        customer_reference: str | None,
    ) -> StripeCustomer:
        """
        Find the stored customer for an explicit reference, or get-or-create
        the payer's customer.

        Raises:
            CustomerError: The reference is not stored locally, or the
                transaction has no payer to create a customer for
        """
        if customer_reference:
            customer = self.customers.get_by_reference(customer_reference)
            if customer is None:
                raise CustomerError(
                    f"Stripe customer {customer_reference} is not known to this gateway",
                    details={"customer": customer_reference, "gateway_id": self.config.handle},
                )
            return customer
        if not transaction.user_id:
            raise CustomerError(
                "Transaction has no payer to resolve a Stripe customer for",
                details={"transaction_id": str(transaction.pk)},
            )
        return self.customers.get_or_create(transaction.user)

    @staticmethod
    def _persist(record: PaymentIntentRecord | None, intent: dict[str, Any]) -> None:
        if record is None:
            return
        record.intent_data = intent
        PaymentIntentRepository.upsert(record)
