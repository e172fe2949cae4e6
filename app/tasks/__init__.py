"""
Celery tasks package.
Import all task modules so they're registered with Celery.
"""
from app.tasks import resolution

__all__ = ["resolution"]
