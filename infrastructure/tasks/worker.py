"""Local runner: a worker with an embedded beat scheduler.

Production runs `celery -A infrastructure.tasks worker` and a separate
`celery -A infrastructure.tasks beat` so only one scheduler exists.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main([
        "worker",
        "--beat",
        "--loglevel=INFO",
        "--queues=maintenance",
        "--hostname=worker@%h",
    ])


if __name__ == "__main__":
    main()
