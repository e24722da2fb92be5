"""Celery workers for WorkSafe."""
