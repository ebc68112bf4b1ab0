"""
Delete all locally stored Stripe data.

Removes PaymentIntent records, invoices and Stripe customers. Nothing is
deleted on Stripe itself.

Usage:
    python manage.py billing_reset_data
    python manage.py billing_reset_data --force
"""

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, transaction

from billing.models import Invoice, PaymentIntentRecord, StripeCustomer


class Command(BaseCommand):
    help = "Delete all local Stripe customers, payment intents and invoices"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Do not ask for confirmation",
        )

    def handle(self, *args, **options):
        if not options["force"]:
            answer = input(
                "Resetting billing data will permanently delete all customers, "
                "payment intents, and invoice records ... do you wish to continue? [yes/no] "
            )
            if answer.strip().lower() != "yes":
                self.stdout.write("Skipping data reset.")
                return

        self.stdout.write("Resetting billing data ...")
        try:
            with transaction.atomic():
                intents, _ = PaymentIntentRecord.objects.all().delete()
                invoices, _ = Invoice.objects.all().delete()
                customers, _ = StripeCustomer.objects.all().delete()
        except DatabaseError as e:
            raise CommandError(f"Reset failed: {e}") from e

        self.stdout.write(
            self.style.SUCCESS(
                f"Finished. Deleted {intents} payment intents, {invoices} invoices "
                f"and {customers} customers."
            )
        )
