"""
YaadBooks Ledger - Celery Configuration

Celery configuration for background task processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'yaadbooks_ledger',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.celery_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='America/Jamaica',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Beat schedule for periodic tasks
    beat_schedule={
        # Drain the offline sync queue every minute
        'process-sync-queue': {
            'task': 'app.tasks.celery_tasks.process_sync_queue_task',
            'schedule': crontab(),
        },

        # Pull exchange rates every morning at 10 AM, after the BOJ publishes
        'refresh-exchange-rates': {
            'task': 'app.tasks.celery_tasks.refresh_exchange_rates_task',
            'schedule': crontab(hour=10, minute=0),
        },
    },
)


celery_app.conf.task_routes = {
    'app.tasks.celery_tasks.process_sync_queue_task': {'queue': 'sync'},
    'app.tasks.celery_tasks.*': {'queue': 'default'},
}
