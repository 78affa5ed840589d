"""Utility helpers for Celery tasks."""
from .base_task import BaseTask, run_async

__all__ = ["BaseTask", "run_async"]
