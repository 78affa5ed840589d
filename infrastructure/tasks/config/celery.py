"""Celery application for purchase maintenance jobs.

One queue, ``maintenance``, for the periodic reconciliation sweep. The sweep
also finishes any enrollment fan-out a completion left undone.
"""
from __future__ import annotations

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


logger = get_logger(__name__)

TASK_PACKAGES = ["infrastructure.tasks.tasks"]

TASK_ROUTES = {
    "purchases.reconcile": {"queue": "maintenance"},
}

EAGER_ENVIRONMENTS = {"development", "dev", "test", "testing"}


def create_celery_app() -> Celery:
    app = Celery("course_purchases", broker=settings.redis.url, backend=settings.redis.url)
    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # A task lost with its worker is redelivered; the sweep is idempotent
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        result_expires=3600,
        worker_hijack_root_logger=False,
        task_default_queue="maintenance",
        task_queues=(Queue("maintenance"),),
        task_routes=TASK_ROUTES,
        beat_schedule=CELERY_BEAT_SCHEDULE,
        task_always_eager=(settings.ENVIRONMENT or "").lower() in EAGER_ENVIRONMENTS,
    )
    app.autodiscover_tasks(packages=TASK_PACKAGES, related_name=None)
    return app


celery_app = create_celery_app()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        queues=[q.name for q in sender.conf.task_queues],
        eager=sender.conf.task_always_eager,
    )
