"""Celery application for background sweeps (expiry, dispute SLA checks)."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "airbar.settings.settings")

app = Celery("airbar")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
