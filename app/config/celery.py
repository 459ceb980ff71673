"""
Celery configuration for the payment orchestration service.

Celery runs the background side of the payment lifecycle:
- Periodic expiry of PENDING payments whose checkout window has closed
- Any future provider reconciliation sweeps

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; the beat schedule
lives in settings.CELERY_BEAT_SCHEDULE.

Usage:
    # Run a worker and the beat scheduler:
    celery -A config worker -l info
    celery -A config beat -l info

    # Trigger the expiry sweep manually:
    from payments.tasks import expire_stale_payments
    expire_stale_payments.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
