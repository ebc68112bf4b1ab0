"""
Stripe API adapter for billing operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency and
observability.

Each adapter instance is bound to one GatewayConfig and owns its own
stripe.StripeClient, so the API key and API version travel with the
instance instead of living in the stripe module's globals. Two gateways
with different keys can run side by side in one process.

Features:
- Per-gateway client (API key, version, timeout, network retries)
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency keys on every mutating call
- Plain dict snapshots in, plain dict snapshots out

Usage:
    from billing.adapters import CreatePaymentIntentParams, StripeAdapter

    adapter = StripeAdapter(GatewayConfig.load("stripe"))

    intent = adapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount=1999,
            currency="usd",
            customer="cus_xxx",
            payment_method="pm_xxx",
            idempotency_key=transaction.hash,
        )
    )
    intent["status"]  # "requires_confirmation"
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeResourceMissingError,
    WebhookVerificationError,
)

if TYPE_CHECKING:
    from billing.gateways.config import GatewayConfig


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating or updating a Stripe PaymentIntent.

    Attributes:
        amount: Amount in the currency's minor unit (e.g. cents)
        currency: ISO 4217 currency code
        idempotency_key: Key that makes a retried call safe
        customer: Stripe Customer ID
        payment_method: Stripe PaymentMethod ID to charge
        description: Statement/dashboard description
        metadata: Key-value pairs attached to the intent
        capture_method: 'automatic' or 'manual' (create only)
        confirmation_method: 'manual' keeps confirmation server-side (create only)
        receipt_email: Email Stripe sends the receipt to
    """

    amount: int
    currency: str
    idempotency_key: str
    customer: str | None = None
    payment_method: str | None = None
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    capture_method: str = "automatic"
    confirmation_method: str = "manual"
    receipt_email: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")
        if self.capture_method not in ("automatic", "manual"):
            raise ValueError("capture_method must be 'automatic' or 'manual'")

    def update_params(self) -> dict[str, Any]:
        """Fields Stripe accepts on PaymentIntent update."""
        params: dict[str, Any] = {
            "amount": self.amount,
            "currency": self.currency.lower(),
            "description": self.description,
            "metadata": self.metadata,
        }
        if self.customer:
            params["customer"] = self.customer
        if self.payment_method:
            params["payment_method"] = self.payment_method
        if self.receipt_email:
            params["receipt_email"] = self.receipt_email
        return params

    def create_params(self) -> dict[str, Any]:
        """Update fields plus the create-only options; confirmation is deferred."""
        return {
            **self.update_params(),
            "capture_method": self.capture_method,
            "confirmation_method": self.confirmation_method,
            "confirm": False,
        }


@dataclass
class CreateCustomerParams:
    """
    Parameters for creating a Stripe Customer.

    Attributes:
        idempotency_key: Key that makes a retried call safe
        email: Customer email
        name: Display name
        metadata: Key-value pairs attached to the customer
    """

    idempotency_key: str
    email: str | None = None
    name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"metadata": self.metadata}
        if self.email:
            params["email"] = self.email
        if self.name:
            params["name"] = self.name
        return params


# =============================================================================
# Snapshot Helpers
# =============================================================================


def to_snapshot(obj: Any) -> dict[str, Any]:
    """
    Convert a Stripe object to a plain dict.

    Snapshots are stored in JSONFields, so nested StripeObjects must be
    converted all the way down.
    """
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations, bound to one gateway config.

    Instances are cheap but hold an HTTP client; the gateway registry
    builds one per configured gateway and reuses it.

    Thread-safety: the underlying StripeClient keeps no per-request
    state, so one instance may be shared by Celery worker threads.
    """

    def __init__(self, config: GatewayConfig, client: Any | None = None):
        self.config = config
        self._client = client

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def client(self) -> Any:
        """Lazily build the StripeClient for this gateway."""
        if self._client is None:
            self._client = stripe.StripeClient(
                api_key=self.config.secret_key,
                stripe_version=self.config.api_version,
                max_network_retries=self.config.max_retries,
                http_client=stripe.RequestsClient(timeout=self.config.timeout),
            )
        return self._client

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _execute(
        self,
        operation: str,
        call: Callable[[], Any],
        log_context: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run one Stripe call with timing, logging and error translation.

        Raises:
            StripeError subclass for any stripe SDK error. Non-Stripe
            exceptions propagate unchanged.
        """
        logger = self.get_logger()
        log_context = {
            "operation": operation,
            "gateway_id": self.config.handle,
            **(log_context or {}),
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = call()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": getattr(result, "id", None),
                "duration_ms": duration_ms,
            },
        )
        return result

    @staticmethod
    def _options(idempotency_key: str | None = None) -> dict[str, Any]:
        return {"idempotency_key": idempotency_key} if idempotency_key else {}

    # =========================================================================
    # Customers
    # =========================================================================

    def create_customer(self, params: CreateCustomerParams) -> dict[str, Any]:
        customer = self._execute(
            "create_customer",
            lambda: self.client.v1.customers.create(
                params=params.to_params(),
                options=self._options(params.idempotency_key),
            ),
            {"idempotency_key": params.idempotency_key},
        )
        return to_snapshot(customer)

    def retrieve_customer(self, reference: str) -> dict[str, Any]:
        """
        Retrieve a customer.

        Deleted customers come back as {"id": ..., "deleted": True} rather
        than raising; callers must check.
        """
        customer = self._execute(
            "retrieve_customer",
            lambda: self.client.v1.customers.retrieve(reference),
            {"customer": reference},
        )
        return to_snapshot(customer)

    def iter_customers(self) -> Iterator[dict[str, Any]]:
        """Yield every customer on the account, following pagination."""
        page = self._execute(
            "list_customers",
            lambda: self.client.v1.customers.list(params={"limit": 100}),
        )
        for customer in page.auto_paging_iter():
            yield to_snapshot(customer)

    # =========================================================================
    # Payment Intents
    # =========================================================================

    def create_payment_intent(self, params: CreatePaymentIntentParams) -> dict[str, Any]:
        """
        Create a PaymentIntent without confirming it.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        intent = self._execute(
            "create_payment_intent",
            lambda: self.client.v1.payment_intents.create(
                params=params.create_params(),
                options=self._options(params.idempotency_key),
            ),
            {
                "amount": params.amount,
                "currency": params.currency,
                "idempotency_key": params.idempotency_key,
            },
        )
        return to_snapshot(intent)

    def update_payment_intent(
        self,
        reference: str,
        params: CreatePaymentIntentParams,
    ) -> dict[str, Any]:
        intent = self._execute(
            "update_payment_intent",
            lambda: self.client.v1.payment_intents.update(
                reference,
                params=params.update_params(),
                options=self._options(params.idempotency_key),
            ),
            {"payment_intent_id": reference, "idempotency_key": params.idempotency_key},
        )
        return to_snapshot(intent)

    def confirm_payment_intent(
        self,
        reference: str,
        return_url: str,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        intent = self._execute(
            "confirm_payment_intent",
            lambda: self.client.v1.payment_intents.confirm(
                reference,
                params={"return_url": return_url},
                options=self._options(idempotency_key),
            ),
            {"payment_intent_id": reference, "idempotency_key": idempotency_key},
        )
        return to_snapshot(intent)

    def capture_payment_intent(
        self,
        reference: str,
        idempotency_key: str,
        amount_to_capture: int | None = None,
    ) -> dict[str, Any]:
        """
        Capture an authorized PaymentIntent.

        Args:
            reference: PaymentIntent ID (pi_xxx)
            idempotency_key: Key for the capture request
            amount_to_capture: Partial capture amount in minor units
        """
        params: dict[str, Any] = {}
        if amount_to_capture is not None:
            params["amount_to_capture"] = amount_to_capture

        intent = self._execute(
            "capture_payment_intent",
            lambda: self.client.v1.payment_intents.capture(
                reference,
                params=params,
                options=self._options(idempotency_key),
            ),
            {"payment_intent_id": reference, "idempotency_key": idempotency_key},
        )
        return to_snapshot(intent)

    def retrieve_payment_intent(self, reference: str) -> dict[str, Any]:
        intent = self._execute(
            "retrieve_payment_intent",
            lambda: self.client.v1.payment_intents.retrieve(reference),
            {"payment_intent_id": reference},
        )
        return to_snapshot(intent)

    # =========================================================================
    # Refunds
    # =========================================================================

    def create_refund(
        self,
        payment_intent: str,
        idempotency_key: str,
        amount: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Refund a PaymentIntent's charge, fully or partially.

        Args:
            payment_intent: PaymentIntent ID (pi_xxx)
            idempotency_key: Key for the refund request
            amount: Partial refund in minor units (None for full refund)
            metadata: Key-value pairs attached to the refund
        """
        params: dict[str, Any] = {"payment_intent": payment_intent}
        if amount is not None:
            params["amount"] = amount
        if metadata:
            params["metadata"] = metadata

        refund = self._execute(
            "create_refund",
            lambda: self.client.v1.refunds.create(
                params=params,
                options=self._options(idempotency_key),
            ),
            {
                "payment_intent_id": payment_intent,
                "amount": amount,
                "idempotency_key": idempotency_key,
            },
        )
        return to_snapshot(refund)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def retrieve_subscription(
        self,
        reference: str,
        expand: list[str] | None = None,
    ) -> dict[str, Any]:
        params = {"expand": expand} if expand else {}
        subscription = self._execute(
            "retrieve_subscription",
            lambda: self.client.v1.subscriptions.retrieve(reference, params=params),
            {"subscription_id": reference},
        )
        return to_snapshot(subscription)

    def modify_subscription(
        self,
        reference: str,
        params: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        subscription = self._execute(
            "modify_subscription",
            lambda: self.client.v1.subscriptions.update(
                reference,
                params=params,
                options=self._options(idempotency_key),
            ),
            {"subscription_id": reference, "idempotency_key": idempotency_key},
        )
        return to_snapshot(subscription)

    def cancel_subscription(self, reference: str) -> dict[str, Any]:
        subscription = self._execute(
            "cancel_subscription",
            lambda: self.client.v1.subscriptions.cancel(reference),
            {"subscription_id": reference},
        )
        return to_snapshot(subscription)

    # =========================================================================
    # Invoices
    # =========================================================================

    def list_invoices(
        self,
        subscription: str,
        limit: int = 50,
        starting_after: str | None = None,
    ) -> dict[str, Any]:
        """
        Fetch one page of a subscription's invoices.

        Returns:
            Dict with "data" (list of invoice dicts) and "has_more"
        """
        params: dict[str, Any] = {"subscription": subscription, "limit": limit}
        if starting_after:
            params["starting_after"] = starting_after

        page = self._execute(
            "list_invoices",
            lambda: self.client.v1.invoices.list(params=params),
            {"subscription_id": subscription, "starting_after": starting_after},
        )
        return to_snapshot(page)

    def retrieve_invoice(self, reference: str) -> dict[str, Any]:
        invoice = self._execute(
            "retrieve_invoice",
            lambda: self.client.v1.invoices.retrieve(reference),
            {"invoice_id": reference},
        )
        return to_snapshot(invoice)

    def pay_invoice(self, reference: str, idempotency_key: str | None = None) -> dict[str, Any]:
        invoice = self._execute(
            "pay_invoice",
            lambda: self.client.v1.invoices.pay(
                reference,
                options=self._options(idempotency_key),
            ),
            {"invoice_id": reference, "idempotency_key": idempotency_key},
        )
        return to_snapshot(invoice)

    def create_invoice(
        self,
        customer: str,
        subscription: str,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        invoice = self._execute(
            "create_invoice",
            lambda: self.client.v1.invoices.create(
                params={"customer": customer, "subscription": subscription},
                options=self._options(idempotency_key),
            ),
            {"customer": customer, "subscription_id": subscription},
        )
        return to_snapshot(invoice)

    def preview_invoice(
        self,
        customer: str,
        subscription: str,
        items: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Preview the next invoice for a hypothetical item change.

        The billing cycle anchor is reset to now so the preview shows what
        an immediate switch would cost.
        """
        invoice = self._execute(
            "preview_invoice",
            lambda: self.client.v1.invoices.create_preview(
                params={
                    "customer": customer,
                    "subscription": subscription,
                    "subscription_details": {
                        "items": items,
                        "billing_cycle_anchor": "now",
                    },
                },
            ),
            {"customer": customer, "subscription_id": subscription},
        )
        return to_snapshot(invoice)

    # =========================================================================
    # Plans & Products
    # =========================================================================

    def list_plans(self, limit: int = 100) -> list[dict[str, Any]]:
        page = self._execute(
            "list_plans",
            lambda: self.client.v1.plans.list(params={"limit": limit}),
        )
        return to_snapshot(page).get("data", [])

    def list_products(self, ids: list[str]) -> list[dict[str, Any]]:
        if not ids:
            return []
        page = self._execute(
            "list_products",
            lambda: self.client.v1.products.list(params={"ids": ids, "limit": len(ids)}),
        )
        return to_snapshot(page).get("data", [])

    # =========================================================================
    # Payment Methods
    # =========================================================================

    def list_payment_methods(self, customer: str, type: str = "card") -> Iterator[dict[str, Any]]:
        """Yield a customer's payment methods of one type, following pagination."""
        page = self._execute(
            "list_payment_methods",
            lambda: self.client.v1.payment_methods.list(
                params={"customer": customer, "type": type, "limit": 100},
            ),
            {"customer": customer},
        )
        for payment_method in page.auto_paging_iter():
            yield to_snapshot(payment_method)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook(self, payload: bytes | str, signature: str) -> dict[str, Any]:
        """
        Verify a webhook signature and decode the payload.

        The signature is an HMAC-SHA256 over "<timestamp>.<body>" with the
        gateway's signing secret; timestamps older than the configured
        tolerance are rejected.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Returns:
            Decoded event dict

        Raises:
            WebhookVerificationError: Bad signature, stale timestamp or non-JSON body
        """
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.config.webhook_secret,
                self.config.webhook_tolerance,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(
                "Invalid webhook signature",
                details={"error": str(e)},
            ) from e

        try:
            data = json.loads(body)
        except ValueError as e:
            raise WebhookVerificationError(
                "Could not decode JSON payload",
                error_code="WEBHOOK_INVALID_JSON",
            ) from e

        if not isinstance(data, dict):
            raise WebhookVerificationError(
                "Could not decode JSON payload",
                error_code="WEBHOOK_INVALID_JSON",
            )
        return data

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Every translated error keeps Stripe's code and a human-readable
        message so the orchestrator can turn it into a classified result.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeResourceMissingError: Referenced object does not exist
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable or connection failed
            StripeAuthenticationError: API key rejected
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            body = (getattr(error, "json_body", None) or {}).get("error", {})
            decline_code = getattr(error, "decline_code", None) or body.get("decline_code")
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "stripe_code": error.code, "decline_code": decline_code},
            )
            raise StripeCardDeclinedError(
                str(error.user_message or body.get("message") or "Your card was declined."),
                stripe_code=error.code,
                decline_code=decline_code,
                charge_id=body.get("charge"),
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if error.code == "resource_missing":
                raise StripeResourceMissingError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                ) from error
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code=error.code or "rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code=error.code or "api_error",
            ) from error

        else:
            logger.error(
                f"Stripe error: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeError(
                str(error.user_message or error),
                stripe_code=error.code or type(error).__name__,
            ) from error
