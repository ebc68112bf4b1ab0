"""
URL configuration for the billing service.

URL Structure:
    /admin/                                   - Django admin interface
    /billing/webhooks/<gateway>/              - Stripe webhook endpoint (POST)
    /billing/subscriptions/<id>/payments/     - Subscription payment history
    /billing/subscriptions/<id>/switch-preview/ - Plan switch cost preview
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("billing/", include("billing.urls")),
]

admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin"
admin.site.index_title = "Payments and subscriptions"
