"""
YaadBooks Ledger - Bank Import Service

Bank accounts, statement imports and manual bank transactions.

Imports are idempotent: every parsed row is checked against the
account's stored transactions (and earlier rows of the same file) with
ImportDedupPolicy before it is written. Rows are written in bounded
chunks, one transaction per chunk, so a failure mid-file never holds a
long transaction open and never leaves a chunk half applied.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.audit import AuditAction
from app.models.banking import (
    BankAccount,
    BankTransaction,
    BankTransactionType,
    ImportBatch,
    ImportBatchStatus,
)
from app.schemas.banking import BankAccountCreate, ManualTransactionCreate
from app.services.audit_service import AuditService
from app.services.statement_parser import (
    DetectedFormat,
    ParsedTransaction,
    detect_format,
    parse_statement,
)
from app.utils.error_handling import (
    InvalidAmountException,
    NotFoundException,
    StorageException,
)
from app.utils.storage import run_with_storage_retry

logger = logging.getLogger(__name__)


# ===========================================
# DUPLICATE POLICY
# ===========================================

class ImportDedupPolicy:
    """
    Decides whether a parsed row is already present for an account.

    A candidate duplicates a stored transaction when all of these hold:
    same bank account, same transaction date, same absolute amount, and
    either the same description or the same non-empty reference.
    Descriptions compare case-insensitively with whitespace collapsed.

    Known limitation: two genuinely distinct transactions with the same
    date, amount and description collapse into one. Double counting is
    worse than a missed row, so this is accepted; the skipped row shows up
    in the batch's skipped_count.
    """

    @staticmethod
    def normalize_description(description: Optional[str]) -> str:
        return " ".join((description or "").split()).casefold()

    @staticmethod
    def normalize_reference(reference: Optional[str]) -> Optional[str]:
        reference = (reference or "").strip()
        return reference or None

    @staticmethod
    def bucket_key(transaction_date: date, amount: Decimal) -> Tuple[date, Decimal]:
        return transaction_date, abs(Decimal(amount))

    def is_duplicate(
        self,
        description: Optional[str],
        reference: Optional[str],
        existing: Sequence[Tuple[str, Optional[str]]],
    ) -> bool:
        """
        ``existing`` holds normalized (description, reference) pairs already
        known for the candidate's (date, absolute amount) bucket.
        """
        wanted_description = self.normalize_description(description)
        wanted_reference = self.normalize_reference(reference)
        for known_description, known_reference in existing:
            if known_description == wanted_description:
                return True
            if wanted_reference and known_reference == wanted_reference:
                return True
        return False


class _DedupIndex:
    """Known (description, reference) pairs bucketed by (date, |amount|)."""

    def __init__(self, policy: ImportDedupPolicy):
        self.policy = policy
        self._buckets: Dict[Tuple[date, Decimal], List[Tuple[str, Optional[str]]]] = defaultdict(list)

    def add(self, transaction_date: date, amount: Decimal, description: Optional[str], reference: Optional[str]) -> None:
        self._buckets[self.policy.bucket_key(transaction_date, amount)].append((
            self.policy.normalize_description(description),
            self.policy.normalize_reference(reference),
        ))

    def contains(self, row: ParsedTransaction) -> bool:
        bucket = self._buckets.get(self.policy.bucket_key(row.date, row.amount), [])
        return self.policy.is_duplicate(row.description, row.reference, bucket)


@dataclass
class ImportResult:
    """Outcome of importing one statement file."""
    batch_id: uuid.UUID
    imported: int
    skipped: int
    total_parsed: int
    detected_format: DetectedFormat
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    layout: Optional[str] = None


def _chunks(rows: Sequence[ParsedTransaction], size: int) -> Iterator[Sequence[ParsedTransaction]]:
    size = max(1, size)
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class BankImportService:
    """Service for bank accounts, statement imports and manual transactions."""

    def __init__(self, db: AsyncSession, dedup_policy: Optional[ImportDedupPolicy] = None):
        self.db = db
        self.dedup_policy = dedup_policy or ImportDedupPolicy()

    # ===========================================
    # BANK ACCOUNT OPERATIONS
    # ===========================================

    async def create_bank_account(
        self,
        company_id: uuid.UUID,
        data: BankAccountCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankAccount:
        """Create a bank account; its running balance starts at the opening balance."""
        account = BankAccount(
            company_id=company_id,
            bank_name=data.bank_name,
            account_name=data.account_name,
            account_number=data.account_number,
            currency=data.currency.upper(),
            current_balance=data.opening_balance,
            gl_account_id=data.gl_account_id,
        )
        self.db.add(account)
        await self.db.commit()

        logger.info(f"Created bank account {account.bank_name} {account.account_number} for company {company_id}")
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="bank_account",
            entity_id=account.id,
            action=AuditAction.CREATE,
            user_id=user_id,
            new_values={
                "bank_name": account.bank_name,
                "account_number": account.account_number,
                "currency": account.currency,
                "opening_balance": data.opening_balance,
            },
        )
        return account

    async def list_bank_accounts(self, company_id: uuid.UUID, is_active: Optional[bool] = True) -> List[BankAccount]:
        query = select(BankAccount).where(BankAccount.company_id == company_id)
        if is_active is not None:
            query = query.where(BankAccount.is_active == is_active)
        query = query.order_by(BankAccount.bank_name, BankAccount.account_name)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_bank_account(self, company_id: uuid.UUID, bank_account_id: uuid.UUID) -> BankAccount:
        result = await self.db.execute(
            select(BankAccount)
            .where(and_(
                BankAccount.id == bank_account_id,
                BankAccount.company_id == company_id,
            ))
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if not account:
            raise NotFoundException("BankAccount", bank_account_id)
        return account

    async def _increment_balance(self, bank_account_id: uuid.UUID, delta: Decimal) -> None:
        # Single UPDATE so concurrent imports serialize on the row, not in Python
        await self.db.execute(
            update(BankAccount)
            .where(BankAccount.id == bank_account_id)
            .values(current_balance=BankAccount.current_balance + delta)
            .execution_options(synchronize_session=False)
        )

    # ===========================================
    # STATEMENT IMPORT
    # ===========================================

    async def _load_dedup_index(self, bank_account_id: uuid.UUID, dates: Sequence[date]) -> _DedupIndex:
        index = _DedupIndex(self.dedup_policy)
        result = await self.db.execute(
            select(
                BankTransaction.transaction_date,
                BankTransaction.amount,
                BankTransaction.description,
                BankTransaction.reference,
            ).where(and_(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.transaction_date.in_(set(dates)),
            ))
        )
        for transaction_date, amount, description, reference in result.all():
            index.add(transaction_date, amount, description, reference)
        return index

    async def _import_chunk(
        self,
        bank_account_id: uuid.UUID,
        batch_id: uuid.UUID,
        rows: Sequence[ParsedTransaction],
        user_id: Optional[uuid.UUID],
    ) -> Tuple[int, int]:
        """Dedup and insert one chunk, then commit. Returns (imported, skipped)."""
        index = await self._load_dedup_index(bank_account_id, [row.date for row in rows])

        imported = 0
        skipped = 0
        delta = Decimal("0.00")
        for row in rows:
            if index.contains(row):
                skipped += 1
                continue
            self.db.add(BankTransaction(
                bank_account_id=bank_account_id,
                import_batch_id=batch_id,
                transaction_date=row.date,
                post_date=row.post_date,
                description=row.description,
                reference=row.reference,
                amount=row.amount,
                transaction_type=row.type,
                balance=row.balance,
                category=row.category,
                created_by_id=user_id,
            ))
            # Later rows in the same file dedup against this one
            index.add(row.date, row.amount, row.description, row.reference)
            delta += row.amount
            imported += 1

        if imported:
            await self._increment_balance(bank_account_id, delta)
        await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id)
            .values(
                imported_count=ImportBatch.imported_count + imported,
                skipped_count=ImportBatch.skipped_count + skipped,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return imported, skipped

    async def _mark_batch_failed(self, batch_id: uuid.UUID, message: str) -> None:
        try:
            await self.db.execute(
                update(ImportBatch)
                .where(ImportBatch.id == batch_id)
                .values(
                    status=ImportBatchStatus.FAILED,
                    error_message=message[:2000],
                    completed_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(f"Could not mark import batch {batch_id} as failed: {exc}")

    async def import_statement(
        self,
        company_id: uuid.UUID,
        bank_account_id: uuid.UUID,
        file_bytes: bytes,
        file_name: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> ImportResult:
        """
        Parse a statement file and import its transactions into a bank account.

        A parse error rejects the whole file before anything is written.
        A storage failure that outlives its retries marks the batch failed
        and raises StorageException; chunks committed before the failure
        stay in place and are skipped as duplicates when the file is
        imported again.
        """
        account = await self.get_bank_account(company_id, bank_account_id)
        account_id = account.id

        detected = detect_format(file_name, file_bytes)
        statement = parse_statement(file_bytes, file_name=file_name, declared_format=detected)
        rows = statement.transactions

        batch = ImportBatch(
            company_id=company_id,
            bank_account_id=account_id,
            file_name=file_name or "statement",
            file_type=statement.format.value,
            detected_bank=statement.bank_name,
            transaction_count=len(rows),
            status=ImportBatchStatus.PENDING,
            imported_by_id=user_id,
        )
        self.db.add(batch)
        await self.db.commit()
        batch_id = batch.id

        logger.info(
            f"Importing {len(rows)} transactions from {file_name} "
            f"({statement.format.value}, layout {statement.layout}) into bank account {account_id}"
        )

        imported = 0
        skipped = 0
        for number, chunk in enumerate(_chunks(rows, settings.import_chunk_size), start=1):
            try:
                chunk_imported, chunk_skipped = await run_with_storage_retry(
                    self.db,
                    lambda chunk=chunk: self._import_chunk(account_id, batch_id, chunk, user_id),
                    f"statement import chunk {number}",
                )
            except StorageException as exc:
                logger.error(
                    f"Import batch {batch_id} failed on chunk {number}: {exc.message} "
                    f"({imported} imported, {skipped} skipped before failure)"
                )
                await self._mark_batch_failed(batch_id, exc.message)
                raise
            except Exception as exc:
                logger.error(f"Import batch {batch_id} failed on chunk {number}: {exc}")
                await self._mark_batch_failed(batch_id, str(exc))
                raise
            imported += chunk_imported
            skipped += chunk_skipped

        await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id)
            .values(status=ImportBatchStatus.COMPLETED, completed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(f"Import batch {batch_id} completed: {imported} imported, {skipped} skipped")
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="import_batch",
            entity_id=batch_id,
            action=AuditAction.IMPORT,
            user_id=user_id,
            new_values={
                "bank_account_id": account_id,
                "file_name": file_name,
                "imported": imported,
                "skipped": skipped,
            },
        )

        return ImportResult(
            batch_id=batch_id,
            imported=imported,
            skipped=skipped,
            total_parsed=len(rows),
            detected_format=statement.format,
            bank_name=statement.bank_name,
            account_number=statement.account_number,
            layout=statement.layout,
        )

    async def get_import_batch(self, company_id: uuid.UUID, batch_id: uuid.UUID) -> ImportBatch:
        result = await self.db.execute(
            select(ImportBatch)
            .where(and_(
                ImportBatch.id == batch_id,
                ImportBatch.company_id == company_id,
            ))
            .execution_options(populate_existing=True)
        )
        batch = result.scalar_one_or_none()
        if not batch:
            raise NotFoundException("ImportBatch", batch_id)
        return batch

    async def list_import_batches(
        self,
        company_id: uuid.UUID,
        bank_account_id: Optional[uuid.UUID] = None,
        limit: int = 50,
    ) -> List[ImportBatch]:
        query = select(ImportBatch).where(ImportBatch.company_id == company_id)
        if bank_account_id:
            query = query.where(ImportBatch.bank_account_id == bank_account_id)
        query = query.order_by(ImportBatch.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ===========================================
    # TRANSACTIONS
    # ===========================================

    async def create_manual_transaction(
        self,
        company_id: uuid.UUID,
        bank_account_id: uuid.UUID,
        data: ManualTransactionCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankTransaction:
        """
        Record a hand-entered bank transaction.

        ``data.amount`` is signed (withdrawals negative). The balance
        increment commits with the row.
        """
        account = await self.get_bank_account(company_id, bank_account_id)
        account_id = account.id
        if data.amount == 0:
            raise InvalidAmountException(data.amount, message="Transaction amount must not be zero")

        transaction_type = BankTransactionType.CREDIT if data.amount > 0 else BankTransactionType.DEBIT

        async def _persist() -> BankTransaction:
            transaction = BankTransaction(
                bank_account_id=account_id,
                transaction_date=data.transaction_date,
                post_date=data.post_date,
                description=data.description,
                reference=data.reference,
                amount=data.amount,
                transaction_type=transaction_type,
                category=data.category,
                created_by_id=user_id,
            )
            self.db.add(transaction)
            await self._increment_balance(account_id, data.amount)
            await self.db.commit()
            return transaction

        transaction = await run_with_storage_retry(self.db, _persist, "manual bank transaction")
        logger.info(f"Recorded manual transaction {transaction.id} of {data.amount} on bank account {account_id}")
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="bank_transaction",
            entity_id=transaction.id,
            action=AuditAction.CREATE,
            user_id=user_id,
            new_values={
                "bank_account_id": account_id,
                "transaction_date": data.transaction_date,
                "amount": data.amount,
                "description": data.description,
            },
        )
        return transaction

    async def list_transactions(
        self,
        company_id: uuid.UUID,
        bank_account_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        is_reconciled: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[BankTransaction], int]:
        """List an account's transactions oldest first with the total count."""
        await self.get_bank_account(company_id, bank_account_id)

        query = select(BankTransaction).where(BankTransaction.bank_account_id == bank_account_id)
        if start_date:
            query = query.where(BankTransaction.transaction_date >= start_date)
        if end_date:
            query = query.where(BankTransaction.transaction_date <= end_date)
        if is_reconciled is not None:
            query = query.where(BankTransaction.is_reconciled == is_reconciled)

        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        query = (
            query.order_by(BankTransaction.transaction_date, BankTransaction.created_at)
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total


def get_bank_import_service(db: AsyncSession) -> BankImportService:
    """Factory function for BankImportService."""
    return BankImportService(db)
