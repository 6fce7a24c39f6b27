from celery import Celery
from app.config import settings

celery_app = Celery(
    "pfdomains",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "app.tasks.*": {"queue": "celery"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # One fulfillment at a time per worker slot; runs hold external calls for seconds
    worker_prefetch_multiplier=1,
)

# Auto-discover tasks so that @celery_app.task decorators in app/tasks/ get registered
celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.fulfillment_tasks  # noqa: F401, E402
