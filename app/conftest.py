"""
Project-wide pytest hooks.

Test modules are sorted into the unit / integration / e2e markers
declared in pyproject.toml by file name, so ``pytest -m unit`` runs the
adapter and state-machine suites without touching the API layer.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

E2E_FILES = {"test_integration.py"}

UNIT_FILES = {
    "test_models.py",
    "test_status_mapping.py",
    "test_adapters.py",
    "test_momo_adapter.py",
    "test_zalopay_adapter.py",
    "test_vnpay_adapter.py",
    "test_stripe_adapter.py",
    "test_paypal_adapter.py",
    "test_locks.py",
    "test_core_services.py",
}


def pytest_configure():
    django.setup()

    from django.conf import settings

    # Bursty webhook and refund tests would trip the anon/user throttles
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def pytest_collection_modifyitems(items):
    """Mark each test by its file; an explicit marker wins."""
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue

        filename = os.path.basename(str(item.fspath))
        if filename in E2E_FILES:
            item.add_marker(pytest.mark.e2e)
        elif filename in UNIT_FILES:
            item.add_marker(pytest.mark.unit)
        else:
            # Views, services, ledger, webhooks and tasks all hit the database
            item.add_marker(pytest.mark.integration)
