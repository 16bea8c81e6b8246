"""
YaadBooks Ledger - Celery Tasks

Background tasks for scheduled operations.
"""

import asyncio
import logging
from typing import Any, Dict

import httpx
from celery import shared_task

from app.config import settings
from app.database import async_session_factory

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ===========================================
# SYNC QUEUE TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.process_sync_queue_task')
def process_sync_queue_task() -> Dict[str, int]:
    """Replay queued offline operations that are due."""
    return run_async(_process_sync_queue())


async def _process_sync_queue() -> Dict[str, int]:
    from app.services.sync_queue_service import SyncQueueService

    async with async_session_factory() as db:
        return await SyncQueueService(db).process_due()


# ===========================================
# EXCHANGE RATE TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.refresh_exchange_rates_task')
def refresh_exchange_rates_task() -> Dict[str, Any]:
    """Fetch the configured rate feed and store the quotes."""
    return run_async(_refresh_exchange_rates())


async def _refresh_exchange_rates() -> Dict[str, Any]:
    from app.services.currency_service import CurrencyService, fetch_rate_feed

    if not settings.rate_feed_url:
        logger.info("No rate feed configured, skipping exchange rate refresh")
        return {"status": "skipped"}

    try:
        items = await fetch_rate_feed(settings.rate_feed_url)
    except httpx.HTTPError as e:
        return {"status": "failed", "error": str(e)}

    async with async_session_factory() as db:
        outcome = await CurrencyService(db).apply_rate_feed(items, settings.rate_feed_source)

    logger.info(
        f"Exchange rate refresh from {settings.rate_feed_source}: "
        f"{outcome.applied} applied, {outcome.skipped_manual} kept manual overrides"
    )
    return {
        "status": "completed",
        "applied": outcome.applied,
        "skipped_manual": outcome.skipped_manual,
    }
