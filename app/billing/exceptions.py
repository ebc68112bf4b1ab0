"""
Billing-specific exceptions.

Exception Hierarchy:
    BillingError (base for the billing domain)
    ├── UnsupportedCurrencyError - No minor-unit exponent for a currency
    ├── NotSupportedError - Operation not possible for this transaction/gateway
    ├── CustomerError - Stripe customer could not be resolved or created
    ├── GatewayError - Unexpected failure talking to the gateway
    ├── SubscriptionError - Local subscription missing for a Stripe event
    ├── InvalidConfigError - Local configuration does not match Stripe
    └── WebhookVerificationError - Signature or payload rejected

    PaymentIntentValidationError - Payment intent record invariant broken
        (inherits core ValidationError)

    StripeError - Base for translated Stripe SDK errors (inherits ExternalServiceError)
    ├── StripeCardDeclinedError - Card declined (permanent)
    ├── StripeInvalidRequestError - Invalid request params (permanent)
    │   └── StripeResourceMissingError - Referenced object does not exist
    ├── StripeAuthenticationError - Bad API key (permanent)
    ├── StripeRateLimitError - Rate limited (transient, retry)
    └── StripeAPIUnavailableError - API unavailable or timed out (transient, retry)

Usage:
    from billing.exceptions import StripeError, GatewayError

    try:
        adapter.capture_payment_intent(reference, idempotency_key=reference)
    except StripeError as e:
        return RequestResult.from_error(e)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ExternalServiceError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """
    Base exception for all billing operations.

    Example:
        try:
            orchestrator.refund(transaction)
        except BillingError as e:
            logger.error(f"Billing operation failed: {e}")
            return Response(e.to_dict(), status=400)
    """

    default_error_code: str = "BILLING_ERROR"


class UnsupportedCurrencyError(BillingError):
    """
    Raised when a currency code has no known minor-unit exponent.

    Example:
        raise UnsupportedCurrencyError(
            "Unsupported currency: XYZ",
            details={"currency": "XYZ"},
        )
    """

    default_error_code: str = "UNSUPPORTED_CURRENCY"


class NotSupportedError(BillingError):
    """Raised when an operation cannot be performed, e.g. refunding in an unknown currency."""

    default_error_code: str = "NOT_SUPPORTED"


class CustomerError(BillingError):
    """
    Raised when the Stripe customer for a user cannot be resolved.

    Customer resolution is retried exactly once, and only when Stripe
    reports the stored customer as deleted.
    """

    default_error_code: str = "CUSTOMER_ERROR"


class GatewayError(BillingError):
    """
    Raised for unexpected failures during a gateway request.

    Structured Stripe declines never raise this; they are turned into
    a failed RequestResult instead.
    """

    default_error_code: str = "GATEWAY_ERROR"


class SubscriptionError(BillingError):
    """
    Raised when a Stripe subscription event has no local subscription.

    Only raised after the bounded lookup retry is exhausted, so it marks
    a true inconsistency rather than a commit race.
    """

    default_error_code: str = "SUBSCRIPTION_ERROR"


class InvalidConfigError(BillingError):
    """Raised when local configuration does not match Stripe, e.g. an unknown plan."""

    default_error_code: str = "INVALID_CONFIG"


class WebhookVerificationError(BillingError):
    """Raised when a webhook signature or body cannot be verified."""

    default_error_code: str = "WEBHOOK_VERIFICATION_FAILED"


class PaymentIntentValidationError(ValidationError):
    """
    Raised when saving a payment intent record would break an invariant.

    Example:
        raise PaymentIntentValidationError(
            "Reference pi_123 already belongs to another payment intent",
            error_code="DUPLICATE_REFERENCE",
            details={"reference": ["Already in use."]},
        )
    """

    default_error_code: str = "PAYMENT_INTENT_INVALID"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(ExternalServiceError):
    """
    Base exception for all translated Stripe errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's machine-readable error code
    - decline_code: Card decline code (if applicable)
    - charge_id: Charge the error refers to (card errors)
    - is_retryable: Whether the operation can be retried

    A StripeError always carries a structured code and message, so callers
    can classify it instead of treating it as fatal.
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        charge_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        if charge_id:
            details["charge_id"] = charge_id
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code
        self.charge_id = charge_id


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    Common decline codes:
    - generic_decline
    - insufficient_funds
    - lost_card / stolen_card
    - expired_card
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """Invalid parameters were supplied to Stripe's API."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


class StripeResourceMissingError(StripeInvalidRequestError):
    """The referenced Stripe object does not exist (or was deleted)."""

    default_error_code: str = "STRIPE_RESOURCE_MISSING"


class StripeAuthenticationError(StripeError):
    """The configured API key was rejected. Operational issue, never retried."""

    default_error_code: str = "STRIPE_AUTHENTICATION_FAILED"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe. Retry with exponential backoff."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe could not be reached or answered with a server error.

    Timeouts land here as well; the idempotency key makes a retry safe.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Billing domain
    "BillingError",
    "UnsupportedCurrencyError",
    "NotSupportedError",
    "CustomerError",
    "GatewayError",
    "SubscriptionError",
    "InvalidConfigError",
    "WebhookVerificationError",
    "PaymentIntentValidationError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInvalidRequestError",
    "StripeResourceMissingError",
    "StripeAuthenticationError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
]
