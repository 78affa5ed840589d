"""Periodic schedule: the reconciliation sweep."""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "purchases-reconcile": {
        "task": "purchases.reconcile",
        "schedule": float(payment_settings.reconcile.interval_seconds),
        # A sweep still waiting when the next one is due is dropped
        "options": {"queue": "maintenance", "expires": float(payment_settings.reconcile.interval_seconds)},
    },
}
