"""
YaadBooks Ledger - Sync Queue Service

Durable queue for mutations made while a client was offline.

Clients enqueue operations through the API; the Celery worker claims due
items, replays them through the ledger, banking and currency services
and records the outcome on the row. Transient storage failures are
retried with exponential backoff until max_retries, after which the item
is DEAD. Validation, conflict and not-found errors are not retried.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.sync_queue import SyncQueueItem, SyncQueueStatus
from app.schemas.banking import ManualTransactionCreate
from app.schemas.currency import ExchangeRateCreate
from app.schemas.ledger import JournalEntryCreate
from app.services.bank_import_service import BankImportService
from app.services.currency_service import CurrencyService
from app.services.ledger_service import LedgerService
from app.utils.error_handling import StorageException, ValidationException
from app.utils.storage import is_transient_error

logger = logging.getLogger(__name__)

Handler = Callable[[SyncQueueItem], Awaitable[Any]]


# ===========================================
# HANDLERS
# ===========================================

def build_default_handlers(db: AsyncSession) -> Dict[str, Handler]:
    """Replay handlers keyed by operation name."""

    async def post_journal_entry(item: SyncQueueItem) -> Any:
        data = JournalEntryCreate.model_validate(item.payload)
        return await LedgerService(db).post_entry(item.company_id, data, item.user_id)

    async def create_bank_transaction(item: SyncQueueItem) -> Any:
        data = ManualTransactionCreate.model_validate(item.payload)
        bank_account_id = uuid.UUID(str(item.payload["bank_account_id"]))
        return await BankImportService(db).create_manual_transaction(
            item.company_id, bank_account_id, data, item.user_id,
        )

    async def upsert_exchange_rate(item: SyncQueueItem) -> Any:
        data = ExchangeRateCreate.model_validate(item.payload)
        return await CurrencyService(db).upsert_rate(
            data.from_currency,
            data.to_currency,
            data.rate,
            data.rate_date,
            source=data.source,
            is_manual_override=data.is_manual_override,
        )

    return {
        "journal_entry.post": post_journal_entry,
        "bank_transaction.create": create_bank_transaction,
        "exchange_rate.upsert": upsert_exchange_rate,
    }


SUPPORTED_OPERATIONS = frozenset(["journal_entry.post", "bank_transaction.create", "exchange_rate.upsert"])


def _retryable(exc: BaseException) -> bool:
    return isinstance(exc, StorageException) or is_transient_error(exc)


class SyncQueueService:
    """Service for the offline sync queue."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        company_id: uuid.UUID,
        operation: str,
        payload: Dict[str, Any],
        user_id: Optional[uuid.UUID] = None,
        client_reference: Optional[str] = None,
    ) -> SyncQueueItem:
        """
        Persist an operation for background replay.

        Resubmitting the same client_reference returns the existing item.
        """
        if operation not in SUPPORTED_OPERATIONS:
            raise ValidationException(
                f"Unsupported sync operation: {operation}",
                field="operation",
                rule="supported_operation",
                details={"supported": sorted(SUPPORTED_OPERATIONS)},
            )

        if client_reference:
            result = await self.db.execute(
                select(SyncQueueItem).where(and_(
                    SyncQueueItem.company_id == company_id,
                    SyncQueueItem.client_reference == client_reference,
                ))
            )
            existing = result.scalar_one_or_none()
            if existing:
                logger.info(f"Sync item {client_reference} already queued as {existing.id}")
                return existing

        item = SyncQueueItem(
            company_id=company_id,
            user_id=user_id,
            operation=operation,
            payload=payload,
            client_reference=client_reference,
            status=SyncQueueStatus.PENDING,
            retry_count=0,
            max_retries=settings.sync_queue_max_retries,
            next_attempt_at=datetime.now(timezone.utc),
        )
        self.db.add(item)
        await self.db.commit()
        logger.info(f"Queued sync operation {operation} ({item.id}) for company {company_id}")
        return item

    async def claim_due(self, limit: Optional[int] = None) -> List[SyncQueueItem]:
        """
        Claim due PENDING/FAILED items and mark them PROCESSING.

        Row locks with SKIP LOCKED keep concurrent workers off the same rows.
        """
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(SyncQueueItem)
            .where(and_(
                SyncQueueItem.status.in_([SyncQueueStatus.PENDING, SyncQueueStatus.FAILED]),
                or_(SyncQueueItem.next_attempt_at.is_(None), SyncQueueItem.next_attempt_at <= now),
            ))
            .order_by(SyncQueueItem.created_at)
            .limit(limit or settings.sync_queue_batch_size)
            .with_for_update(skip_locked=True)
        )
        items = list(result.scalars().all())
        for item in items:
            item.status = SyncQueueStatus.PROCESSING
        await self.db.commit()
        return items

    async def _reload(self, item_id: uuid.UUID) -> SyncQueueItem:
        return await self.db.get(SyncQueueItem, item_id, populate_existing=True)

    async def mark_completed(self, item_id: uuid.UUID) -> SyncQueueItem:
        item = await self._reload(item_id)
        item.status = SyncQueueStatus.COMPLETED
        item.processed_at = datetime.now(timezone.utc)
        item.last_error = None
        await self.db.commit()
        return item

    async def mark_failed(self, item_id: uuid.UUID, error: str, retryable: bool = True) -> SyncQueueItem:
        """
        Record a failed attempt. Retryable failures back off exponentially
        until max_retries; anything else goes straight to DEAD.
        """
        item = await self._reload(item_id)
        item.retry_count += 1
        item.last_error = error[:2000]

        if not retryable or item.retry_count >= item.max_retries:
            item.status = SyncQueueStatus.DEAD
            item.next_attempt_at = None
            item.processed_at = datetime.now(timezone.utc)
            logger.error(f"Sync item {item.id} ({item.operation}) is dead after {item.retry_count} attempts: {error}")
        else:
            delay = settings.sync_queue_backoff_base_seconds * (2 ** (item.retry_count - 1))
            item.status = SyncQueueStatus.FAILED
            item.next_attempt_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
            logger.warning(f"Sync item {item.id} ({item.operation}) failed, retrying in {delay}s: {error}")

        await self.db.commit()
        return item

    async def process_due(self, handlers: Optional[Dict[str, Handler]] = None) -> Dict[str, int]:
        """Claim and replay due items. Returns outcome counts."""
        handlers = handlers if handlers is not None else build_default_handlers(self.db)
        stats = {"processed": 0, "completed": 0, "retrying": 0, "dead": 0}

        claimed = [item.id for item in await self.claim_due()]
        for item_id in claimed:
            # A failed replay rolls back and expires every loaded item
            item = await self._reload(item_id)
            stats["processed"] += 1

            handler = handlers.get(item.operation)
            if handler is None:
                await self.mark_failed(item_id, f"No handler for operation {item.operation}", retryable=False)
                stats["dead"] += 1
                continue

            try:
                await handler(item)
            except Exception as exc:
                await self.db.rollback()
                updated = await self.mark_failed(item_id, str(exc), retryable=_retryable(exc))
                stats["dead" if updated.status == SyncQueueStatus.DEAD else "retrying"] += 1
                continue

            await self.mark_completed(item_id)
            stats["completed"] += 1

        if stats["processed"]:
            logger.info(f"Sync queue run: {stats}")
        return stats

    async def get_item(self, company_id: uuid.UUID, item_id: uuid.UUID) -> Optional[SyncQueueItem]:
        result = await self.db.execute(
            select(SyncQueueItem).where(and_(
                SyncQueueItem.id == item_id,
                SyncQueueItem.company_id == company_id,
            ))
        )
        return result.scalar_one_or_none()


def get_sync_queue_service(db: AsyncSession) -> SyncQueueService:
    """Factory function for SyncQueueService."""
    return SyncQueueService(db)
