"""
Celery Application Configuration
"""

import os

from celery import Celery
from celery.schedules import crontab

# Use REDIS_URL if set; broker and result backend can be overridden separately
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

app = Celery(
    "recallbox",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["recallbox.tasks.embeddings"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic tasks (Celery Beat)
app.conf.beat_schedule = {
    # Embed new and changed items
    "reindex-items": {
        "task": "tasks.reindex_items",
        "schedule": crontab(minute="*/15"),
        "kwargs": {"batch_size": 100, "force": False},
    },
    # Purge expired search sessions
    "cleanup-search-sessions": {
        "task": "tasks.cleanup_search_sessions",
        "schedule": crontab(minute="*/5"),
    },
}

if __name__ == "__main__":
    app.start()
