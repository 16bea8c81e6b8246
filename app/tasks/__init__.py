"""
YaadBooks Ledger - Background Tasks Package

Celery background tasks.
"""

from app.tasks.celery_tasks import (
    process_sync_queue_task,
    refresh_exchange_rates_task,
    run_async,
)

__all__ = [
    "process_sync_queue_task",
    "refresh_exchange_rates_task",
    "run_async",
]
