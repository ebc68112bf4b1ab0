"""
Subscription status derivation.

Maps Stripe's subscription status plus its timestamps onto the local
status flags. Pure: it mutates the Subscription instance but never
saves it.

Rules, applied in order:

    incomplete_expired  is_expired, date_expired=ended_at, not canceled,
                        no next payment date
    active              not suspended
    past_due            suspended since the latest invoice was created,
                        or since the earlier suspension date
    canceled            is_expired, date_expired=ended_at

Then, for every status and for any field the branch above did not set:

    has_started         status not in (incomplete, incomplete_expired)
    is_canceled         canceled_at is set
    date_canceled       canceled_at
    next_payment_date   current_period_end
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from billing.state_machines import StripeSubscriptionStatus
from billing.timestamps import from_stripe_timestamp

if TYPE_CHECKING:
    from billing.models import Subscription

NOT_STARTED_STATUSES = (
    StripeSubscriptionStatus.INCOMPLETE,
    StripeSubscriptionStatus.INCOMPLETE_EXPIRED,
)


def _latest_invoice_created(data: dict[str, Any]):
    latest_invoice = data.get("latest_invoice")
    if not isinstance(latest_invoice, dict):
        return None
    return from_stripe_timestamp(latest_invoice.get("created"))


def apply_subscription_status(subscription: Subscription, data: dict[str, Any]) -> set[str]:
    """
    Derive status flags from a Stripe subscription snapshot.

    Args:
        subscription: Subscription to update in place
        data: Stripe subscription snapshot

    Returns:
        Names of the fields that were set
    """
    status = data.get("status")
    canceled_at = from_stripe_timestamp(data.get("canceled_at"))
    ended_at = from_stripe_timestamp(data.get("ended_at"))

    updates: dict[str, Any] = {}

    if status == StripeSubscriptionStatus.INCOMPLETE_EXPIRED:
        updates.update(
            is_expired=True,
            date_expired=ended_at,
            is_canceled=False,
            date_canceled=None,
            next_payment_date=None,
        )
    elif status == StripeSubscriptionStatus.ACTIVE:
        updates.update(is_suspended=False, date_suspended=None)
    elif status == StripeSubscriptionStatus.PAST_DUE:
        updates.update(
            is_suspended=True,
            date_suspended=(
                subscription.date_suspended
                if subscription.is_suspended
                else _latest_invoice_created(data)
            ),
        )
    elif status == StripeSubscriptionStatus.CANCELED:
        updates.update(is_expired=True, date_expired=ended_at)

    always = {
        "has_started": status not in NOT_STARTED_STATUSES,
        "is_canceled": bool(canceled_at),
        "date_canceled": canceled_at,
        "next_payment_date": from_stripe_timestamp(data.get("current_period_end")),
    }
    for field_name, value in always.items():
        updates.setdefault(field_name, value)

    for field_name, value in updates.items():
        setattr(subscription, field_name, value)
    return set(updates)
