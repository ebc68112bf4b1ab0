"""
Stripe customer resolution.

Get-or-create of the StripeCustomer for (user, gateway). A stored
customer that Stripe reports as deleted is purged and recreated, once.
Any other failure is surfaced immediately as CustomerError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError

from core.services import BaseService

from billing.adapters import CreateCustomerParams
from billing.exceptions import CustomerError, StripeError, StripeResourceMissingError
from billing.hooks import customer_created
from billing.models import StripeCustomer

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from billing.adapters import StripeAdapter

MAX_ATTEMPTS = 2


class _CustomerGone(Exception):
    """Stored customer no longer exists on Stripe."""


class CustomerService(BaseService):
    """Resolves Stripe customers for one gateway."""

    def __init__(self, gateway_id: str, adapter: StripeAdapter):
        self.gateway_id = gateway_id
        self.adapter = adapter

    def get_by_reference(self, reference: str) -> StripeCustomer | None:
        return StripeCustomer.objects.filter(reference=reference).first()

    def get_or_create(self, user: AbstractBaseUser) -> StripeCustomer:
        """
        Return the user's Stripe customer, creating it when missing.

        Raises:
            CustomerError: Stripe failed, or the customer vanished twice in a row
        """
        purged_reference = None

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return self._resolve(user, purged_reference)
            except _CustomerGone as gone:
                purged_reference = str(gone)
                self.get_logger().warning(
                    "Stripe customer was deleted, recreating",
                    extra={
                        "gateway_id": self.gateway_id,
                        "user_id": user.pk,
                        "customer": purged_reference,
                        "attempt": attempt,
                    },
                )
                StripeCustomer.objects.filter(
                    user=user,
                    gateway_id=self.gateway_id,
                    reference=purged_reference,
                ).delete()
            except StripeError as e:
                raise CustomerError(
                    f"Could not resolve Stripe customer: {e.message}",
                    details={"user_id": str(user.pk), "gateway_id": self.gateway_id},
                ) from e

        raise CustomerError(
            "Stripe customer could not be recreated",
            details={"user_id": str(user.pk), "gateway_id": self.gateway_id},
        )

    def _resolve(self, user: AbstractBaseUser, purged_reference: str | None) -> StripeCustomer:
        customer = StripeCustomer.objects.filter(user=user, gateway_id=self.gateway_id).first()

        if customer:
            try:
                remote = self.adapter.retrieve_customer(customer.reference)
            except StripeResourceMissingError:
                raise _CustomerGone(customer.reference)
            if remote.get("deleted"):
                raise _CustomerGone(customer.reference)
            return customer

        # A fresh key after a purge, otherwise Stripe replays the deleted customer
        key = f"customer:{self.gateway_id}:{user.pk}:{purged_reference or 'initial'}"
        remote = self.adapter.create_customer(
            CreateCustomerParams(
                idempotency_key=key,
                email=getattr(user, "email", None) or None,
                metadata={"user_id": str(user.pk)},
            )
        )

        try:
            with self.atomic():
                customer = StripeCustomer.objects.create(
                    user=user,
                    gateway_id=self.gateway_id,
                    reference=remote["id"],
                    response=remote,
                )
        except IntegrityError:
            # Another request created the row first
            return StripeCustomer.objects.get(user=user, gateway_id=self.gateway_id)

        self.get_logger().info(
            "Created Stripe customer",
            extra={"gateway_id": self.gateway_id, "user_id": user.pk, "customer": customer.reference},
        )
        customer_created.send(sender=self.__class__, user=user, customer=customer)
        return customer
