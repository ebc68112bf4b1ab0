"""
Pytest configuration shared by all apps.

Markers are assigned from test file names; fixtures that every app needs
live here. App-specific fixtures are defined in each app's conftest.py.
"""

import pytest


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_handlers.py, test_tasks.py, etc. → integration
    - test_models.py, test_currency.py, test_stripe_adapter.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_views.py",
        "test_api.py",
        "test_tasks.py",
        "test_handlers.py",
        "test_commands.py",
        "test_orchestrator.py",
        "test_invoices.py",
        "test_subscriptions.py",
        "test_customers.py",
        "test_payment_methods.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_currency.py",
        "test_idempotency.py",
        "test_responses.py",
        "test_subscription_status.py",
        "test_stripe_adapter.py",
        "test_gateways.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def reset_gateway_registry():
    """Drop cached gateways so each test sees its own settings."""
    from billing.gateways import reset_gateways

    reset_gateways()
    yield
    reset_gateways()


def _patch_postgresql_flush_for_cascade():
    """
    Patch PostgreSQL flush to always use CASCADE.

    Django's TransactionTestCase uses TRUNCATE to reset the database, which
    fails on PostgreSQL when tables have foreign key constraints.
    """
    from django.db.backends.postgresql import operations

    original_sql_flush = operations.DatabaseOperations.sql_flush

    def sql_flush_with_cascade(
        self, style, tables, *, reset_sequences=False, allow_cascade=False
    ):
        return original_sql_flush(
            self, style, tables, reset_sequences=reset_sequences, allow_cascade=True
        )

    operations.DatabaseOperations.sql_flush = sql_flush_with_cascade


_patch_postgresql_flush_for_cascade()
