"""
Celery configuration for the billing service.

Background work here is Stripe housekeeping: re-syncing stored payment
methods and refreshing subscription payment history. Webhooks are
reconciled inline by the webhook view and never go through the queue.

Tasks are auto-discovered from all installed Django apps.

Usage:
    from billing.tasks import sync_payment_methods_task

    sync_payment_methods_task.delay("stripe")

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
