"""
Import every card payment method of a gateway's Stripe customers.

Usage:
    python manage.py billing_sync_payment_methods --gateway stripe
    python manage.py billing_sync_payment_methods --gateway stripe --force
    python manage.py billing_sync_payment_methods --gateway stripe --async
"""

from django.core.management.base import BaseCommand, CommandError

from billing.exceptions import BillingError, StripeError
from billing.gateways import get_gateway
from billing.tasks import sync_payment_methods_task


class Command(BaseCommand):
    help = "Sync Stripe payment methods into local payment sources"

    def add_arguments(self, parser):
        parser.add_argument(
            "--gateway",
            required=True,
            help="Gateway handle from BILLING_GATEWAYS",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Do not ask for confirmation",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the sync on Celery instead of running it here",
        )

    def handle(self, *args, **options):
        handle = options["gateway"]

        try:
            gateway = get_gateway(handle)
        except BillingError as e:
            raise CommandError(e.message) from e

        if not options["force"]:
            answer = input(
                "This will sync down all payment methods in your Stripe account "
                "... do you wish to continue? [yes/no] "
            )
            if answer.strip().lower() != "yes":
                self.stdout.write("Skipping data sync.")
                return

        if options["run_async"]:
            sync_payment_methods_task.delay(handle)
            self.stdout.write(self.style.SUCCESS("Sync queued."))
            return

        self.stdout.write("Syncing...")
        try:
            count = gateway.sync_all_payment_methods()
        except StripeError as e:
            raise CommandError(f"Sync failed: {e.message}") from e

        self.stdout.write(self.style.SUCCESS(f"Synced {count} payment methods."))
