from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from eventhub.core.config import settings

celery_app = Celery(
    "eventhub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["eventhub.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_ignore_result=True,
    beat_schedule={
        "cleanup-old-notifications": {
            "task": "cleanup_old_notifications",
            "schedule": crontab(hour=3, minute=0),
            "kwargs": {"days_old": 30},
        },
    },
)
