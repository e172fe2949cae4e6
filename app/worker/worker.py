"""
Worker entrypoint. Run with:
    celery -A app.celery_app worker -Q default,resolution -l info
    celery -A app.celery_app beat -l info
"""
from app.celery_app import app
from app import tasks  # noqa: F401

if __name__ == "__main__":
    app.worker_main()
