"""
WSGI entry point for the billing service.

Serves the webhook endpoint, the read-only billing API and the admin.
Point gunicorn (or any WSGI server) at ``config.wsgi:application``.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
