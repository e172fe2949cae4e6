from celery import Celery
from app.settings import settings

# Prefer configured settings (loaded from .env) with env fallback for flexibility.
broker_url = (
    settings.CELERY_BROKER_URL or settings.REDIS_URL or "redis://localhost:6379/0"
)

backend_url = settings.CELERY_RESULT_BACKEND or "redis://localhost:6379/1"

app = Celery("deepcuts_drops", broker=broker_url, backend=backend_url)


app.conf.update(
    task_default_queue=settings.CELERY_TASK_DEFAULT_QUEUE or "default",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.CELERY_TIMEZONE or "UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={
        "app.tasks.resolution.*": {"queue": "resolution"},
    },
    # a run must finish before beat queues the next one
    task_annotations={
        "app.tasks.resolution.resolve_expired_drops_task": {
            "time_limit": settings.RESOLVE_DROPS_TIME_LIMIT_SECONDS,
            "soft_time_limit": settings.RESOLVE_DROPS_TIME_LIMIT_SECONDS - 30,
        },
    },
    result_expires=settings.RESOLVE_DROPS_INTERVAL_SECONDS * 24,
    beat_schedule={
        "resolve-expired-drops": {
            "task": "app.tasks.resolution.resolve_expired_drops_task",
            "schedule": settings.RESOLVE_DROPS_INTERVAL_SECONDS,
        },
    },
)

# Ensure tasks under app.tasks.* are registered
app.autodiscover_tasks(["app.tasks"])
