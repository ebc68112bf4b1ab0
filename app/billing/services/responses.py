"""
Classified gateway responses.

RequestResult is what checkout code sees after a charge, capture or
refund: whether it succeeded, is still processing, or needs the payer
to go somewhere else first. It is built from a Stripe PaymentIntent or
Refund snapshot, or from a translated Stripe error.

Usage:
    result = RequestResult.from_stripe_object(intent)
    if result.requires_redirect:
        return redirect(result.redirect_url or checkout_url)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from billing.exceptions import StripeError

SUCCESSFUL_INTENT_STATUSES = ("succeeded", "requires_capture")


@dataclass
class RequestResult:
    """
    Outcome of a gateway request.

    Attributes:
        successful: Money moved (or is authorized)
        processing: Accepted, final outcome arrives later
        requires_redirect: Payer must act before the payment can finish
        redirect_url: External URL for next actions ("" means stay on the page)
        redirect_data: Data the page needs, e.g. the intent client secret
        reference: Stripe object ID
        code: Stripe status or error code
        message: Human-readable outcome
        data: Raw snapshot the result was built from
    """

    successful: bool = False
    processing: bool = False
    requires_redirect: bool = False
    redirect_url: str = ""
    redirect_data: dict[str, Any] = field(default_factory=dict)
    reference: str = ""
    code: str = ""
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe_object(cls, data: dict[str, Any]) -> RequestResult:
        """Classify a PaymentIntent or Refund snapshot."""
        if data.get("object") == "refund":
            return cls._from_refund(data)
        return cls._from_payment_intent(data)

    @classmethod
    def _from_payment_intent(cls, data: dict[str, Any]) -> RequestResult:
        status = data.get("status") or ""
        result = cls(
            reference=str(data.get("id") or ""),
            code=status,
            data=data,
        )

        next_action = data.get("next_action") or {}
        redirect_to_url = next_action.get("redirect_to_url") if isinstance(next_action, dict) else None

        if status in SUCCESSFUL_INTENT_STATUSES:
            result.successful = True
        elif redirect_to_url:
            result.requires_redirect = True
            result.redirect_url = (
                redirect_to_url.get("url", "") if isinstance(redirect_to_url, dict) else str(redirect_to_url)
            )
        elif status == "requires_payment_method":
            # Back to the same page with the client secret so a new method can be attached
            result.requires_redirect = True
            result.redirect_data = {"client_secret": data.get("client_secret")}
            last_error = data.get("last_payment_error") or {}
            result.message = last_error.get("message", "")
            result.code = last_error.get("code") or status
        return result

    @classmethod
    def _from_refund(cls, data: dict[str, Any]) -> RequestResult:
        status = data.get("status") or ""
        return cls(
            successful=status == "succeeded",
            processing=status == "pending",
            reference=str(data.get("id") or ""),
            code=status,
            message=data.get("failure_reason") or "",
            data=data,
        )

    @classmethod
    def from_error(cls, error: StripeError) -> RequestResult:
        """
        Build a failed result from a translated Stripe error.

        Card errors point at the declined charge so it can be looked up later.
        """
        return cls(
            successful=False,
            reference=error.charge_id or "",
            code=error.stripe_code or error.error_code,
            message=error.message,
            data={"error": error.to_dict()},
        )
