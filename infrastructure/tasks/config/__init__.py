"""Celery app and beat schedule."""
