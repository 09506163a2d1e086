from celery import Celery
from celery.schedules import schedule
from kombu import Queue

from billing_sync.core.config import settings

celery_app = Celery(
    "billing_sync",
    broker=settings.cache_redis_url,
    backend=settings.cache_redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="webhooks",
    task_queues=(Queue("webhooks"),),
    task_routes={
        "workers.tasks.redrive_stale_webhook_events": {"queue": "webhooks"},
    },
    beat_schedule={
        "webhook-redrive": {
            "task": "workers.tasks.redrive_stale_webhook_events",
            "schedule": schedule(settings.webhook_redrive_interval_seconds),
            "options": {"queue": "webhooks"},
        },
    },
)

celery_app.autodiscover_tasks(["workers"])
