"""
Plan and Subscription models.

Both are owned by the host subscription system. Billing code only writes
the Stripe snapshot, the derived status flags, the next payment date and
the plan of a Subscription; everything else belongs to the host.

Usage:
    from billing.models import Plan, Subscription

    subscription = Subscription.objects.create(
        user=user,
        gateway_id="stripe",
        plan=plan,
        reference="sub_xxx",
    )

    # Reconcile from a Stripe snapshot (see billing.services.subscription_status)
    apply_subscription_status(subscription, stripe_data)
    subscription.save()
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import StripeSubscriptionStatus
from billing.timestamps import from_stripe_timestamp

if TYPE_CHECKING:
    from billing.services.invoices import SubscriptionPayment


class Plan(UUIDPrimaryKeyMixin, BaseModel):
    """
    A subscription plan mapped to a Stripe plan (or price).

    Fields:
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        name: Display name
        handle: Unique local identifier
        reference: Stripe Plan ID (plan_xxx / price_xxx)
        plan_data: Last plan snapshot received from Stripe
        is_enabled: Whether new subscriptions may use the plan
        is_archived: Set when the plan is deleted on Stripe
        date_archived: When the plan was archived
    """

    gateway_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=255)
    handle = models.SlugField(max_length=255, unique=True)
    reference = models.CharField(
        max_length=255,
        help_text="Stripe Plan ID (plan_xxx)",
    )
    plan_data = models.JSONField(default=dict, blank=True)
    is_enabled = models.BooleanField(default=True)
    is_archived = models.BooleanField(default=False)
    date_archived = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "Plan"
        verbose_name_plural = "Plans"
        constraints = [
            models.UniqueConstraint(
                fields=["gateway_id", "reference"],
                name="billing_plan_unique_gateway_reference",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    def archive(self) -> None:
        """Mark archived. Does not save - caller must save after calling."""
        if not self.is_archived:
            self.is_archived = True
            self.date_archived = timezone.now()


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's subscription to a plan, mirrored from Stripe.

    Status flags are derived from Stripe's status enum plus timestamps;
    they are never set by hand outside the reconciler and the expiry
    webhook.

    Fields:
        user: Subscriber
        gateway_id: Handle of the gateway in BILLING_GATEWAYS
        plan: Current plan
        reference: Stripe Subscription ID (sub_xxx), immutable after creation
        subscription_data: Last subscription snapshot received from Stripe
        has_started: False while Stripe reports incomplete/incomplete_expired
        is_canceled / date_canceled: Cancellation requested on Stripe
        is_expired / date_expired: Subscription ended
        is_suspended / date_suspended: Payment past due
        next_payment_date: End of the current billing period
        trial_days: Trial length granted at signup
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="billing_subscriptions",
    )

    gateway_id = models.CharField(max_length=64, db_index=True)

    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )

    reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    subscription_data = models.JSONField(default=dict, blank=True)

    # ==========================================================================
    # Derived Status
    # ==========================================================================

    has_started = models.BooleanField(default=True)
    is_canceled = models.BooleanField(default=False)
    date_canceled = models.DateTimeField(null=True, blank=True)
    is_expired = models.BooleanField(default=False)
    date_expired = models.DateTimeField(null=True, blank=True)
    is_suspended = models.BooleanField(default=False)
    date_suspended = models.DateTimeField(null=True, blank=True)
    next_payment_date = models.DateTimeField(null=True, blank=True)

    trial_days = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["user", "gateway_id"], name="billing_sub_user_gateway_idx"),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.reference})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def stripe_status(self) -> str | None:
        return (self.subscription_data or {}).get("status")

    @property
    def is_active(self) -> bool:
        return self.has_started and not self.is_expired

    @property
    def is_on_trial(self) -> bool:
        """True while Stripe reports trialing or the trial end lies in the future."""
        if self.stripe_status == StripeSubscriptionStatus.TRIALING:
            return True
        trial_end = from_stripe_timestamp((self.subscription_data or {}).get("trial_end"))
        return bool(trial_end and trial_end > timezone.now())

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_expired(self, when: datetime | None = None) -> None:
        """
        Mark the subscription expired.

        Keeps the first expiry date on re-delivery.
        Note: Does not save - caller must save after calling.
        """
        if not self.is_expired:
            self.is_expired = True
            self.date_expired = when or timezone.now()

    def receive_payment(
        self,
        payment: SubscriptionPayment,
        next_payment_date: datetime | None,
    ) -> None:
        """
        Advance the billing period after a paid invoice.

        The period end comes from Stripe as an absolute time, so applying the
        same payment twice lands on the same date.
        """
        from billing.hooks import subscription_payment_received

        if next_payment_date:
            self.next_payment_date = next_payment_date
        self.save(update_fields=["next_payment_date", "updated_at"])
        subscription_payment_received.send(
            sender=self.__class__,
            subscription=self,
            payment=payment,
        )
