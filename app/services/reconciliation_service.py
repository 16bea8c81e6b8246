"""
YaadBooks Ledger - Bank Reconciliation Service

Reconciles a bank account's statement against the books for a period.

State machine:
    in_progress -> completed   (difference within tolerance)
    in_progress -> cancelled   (explicit user action)
Both end states are terminal; any further mutation is a conflict.

Matching pairs each unreconciled bank transaction in the period with a
book document (journal line on the account's ledger account, payment or
expense) of the same signed amount dated within the match window. Book
amounts in another currency are restated in the bank account's currency
first. Ties go to the closest date, then the earliest created document.
Anything still tied is left unmatched and reported with its alternatives
for manual resolution.

Matches are held on the reconciliation until completion. Only completing
the period marks bank transactions as reconciled, so a cancelled period
leaves them untouched.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.accounting import JournalEntry, JournalEntryLine, JournalEntryStatus
from app.models.audit import AuditAction
from app.models.banking import BankAccount, BankTransaction, MatchedDocumentType
from app.models.documents import Expense, Payment
from app.models.reconciliation import (
    BankReconciliation,
    MatchMethod,
    ReconciliationAdjustment,
    ReconciliationMatch,
    ReconciliationStatus,
)
from app.schemas.reconciliation import AdjustmentCreate, ReconciliationStart
from app.services.audit_service import AuditService
from app.services.currency_service import CurrencyService
from app.utils.error_handling import (
    CannotModifyException,
    ConflictException,
    ErrorCode,
    InvalidDateRangeException,
    NotFoundException,
    RateUnavailableException,
    ValidationException,
)
from app.utils.storage import run_with_storage_retry

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class BookDocument:
    """A book-side record that can explain a bank transaction."""
    document_type: MatchedDocumentType
    document_id: uuid.UUID
    document_date: date
    amount: Decimal
    created_at: datetime
    journal_entry_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    # amount is in the bank account's currency, source_amount in the document's own
    currency: str = settings.base_currency
    source_amount: Optional[Decimal] = None

    def __post_init__(self):
        if self.source_amount is None:
            self.source_amount = self.amount


@dataclass
class MatchResult:
    """Outcome of one automatic matching run."""
    reconciliation: BankReconciliation
    matched: List[ReconciliationMatch]
    unmatched_bank: List[BankTransaction]
    unmatched_book: List[BookDocument]
    # Bank transaction id -> equally ranked documents left for manual resolution
    ambiguous: Dict[uuid.UUID, List[BookDocument]] = field(default_factory=dict)


def best_candidates(
    transaction: BankTransaction,
    documents: Sequence[BookDocument],
    window_days: int,
    tolerance: Decimal,
) -> List[BookDocument]:
    """
    All book documents sharing the best rank for a bank transaction.

    Eligible documents have the same signed amount (within tolerance) and a
    date no more than ``window_days`` away. Rank is the distance in days,
    then the creation time. An empty list means nothing is eligible; more
    than one means the top rank is tied.
    """
    eligible = [
        doc for doc in documents
        if abs(doc.amount - transaction.amount) <= tolerance
        and abs((doc.document_date - transaction.transaction_date).days) <= window_days
    ]
    if not eligible:
        return []

    def rank(doc: BookDocument) -> Tuple[int, datetime]:
        return abs((doc.document_date - transaction.transaction_date).days), doc.created_at

    eligible.sort(key=rank)
    best = rank(eligible[0])
    return [doc for doc in eligible if rank(doc) == best]


class ReconciliationService:
    """Service for bank reconciliation periods."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_reconciliation(self, company_id: uuid.UUID, reconciliation_id: uuid.UUID) -> BankReconciliation:
        result = await self.db.execute(
            select(BankReconciliation)
            .where(and_(
                BankReconciliation.id == reconciliation_id,
                BankReconciliation.company_id == company_id,
            ))
            .execution_options(populate_existing=True)
        )
        recon = result.scalar_one_or_none()
        if not recon:
            raise NotFoundException("BankReconciliation", reconciliation_id)
        return recon

    async def _get_open(self, company_id: uuid.UUID, reconciliation_id: uuid.UUID) -> BankReconciliation:
        recon = await self.get_reconciliation(company_id, reconciliation_id)
        if not recon.is_open:
            raise CannotModifyException("BankReconciliation", recon.id, recon.status.value)
        return recon

    async def list_reconciliations(
        self,
        company_id: uuid.UUID,
        bank_account_id: Optional[uuid.UUID] = None,
        status: Optional[ReconciliationStatus] = None,
    ) -> List[BankReconciliation]:
        query = select(BankReconciliation).where(BankReconciliation.company_id == company_id)
        if bank_account_id:
            query = query.where(BankReconciliation.bank_account_id == bank_account_id)
        if status:
            query = query.where(BankReconciliation.status == status)
        query = query.order_by(BankReconciliation.period_end.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _get_bank_account(self, company_id: uuid.UUID, bank_account_id: uuid.UUID) -> BankAccount:
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

    # ===========================================
    # START / CANCEL
    # ===========================================

    async def start_reconciliation(
        self,
        company_id: uuid.UUID,
        data: ReconciliationStart,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankReconciliation:
        """
        Open a reconciliation period for a bank account.

        Only one in_progress reconciliation may exist per account; a second
        start is a conflict.
        """
        if data.period_start > data.period_end:
            raise InvalidDateRangeException(str(data.period_start), str(data.period_end))

        account = await self._get_bank_account(company_id, data.bank_account_id)

        open_recon = await self.db.execute(
            select(BankReconciliation.id).where(and_(
                BankReconciliation.bank_account_id == account.id,
                BankReconciliation.status == ReconciliationStatus.IN_PROGRESS,
            ))
        )
        if open_recon.scalar_one_or_none():
            raise ConflictException(
                "A reconciliation is already in progress for this bank account",
                resource_type="BankReconciliation",
                details={"bank_account_id": str(account.id)},
            )

        opening = data.opening_balance
        if opening is None:
            opening = account.last_reconciled_balance
        if opening is None:
            opening = account.current_balance

        recon = BankReconciliation(
            company_id=company_id,
            bank_account_id=account.id,
            period_start=data.period_start,
            period_end=data.period_end,
            opening_balance=opening,
            statement_balance=data.statement_balance,
            book_balance=opening,
            difference=data.statement_balance - opening,
            status=ReconciliationStatus.IN_PROGRESS,
            notes=data.notes,
            created_by_id=user_id,
            matches=[],
            adjustments=[],
        )
        self.db.add(recon)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            # Lost the race to the partial unique index
            await self.db.rollback()
            raise ConflictException(
                "A reconciliation is already in progress for this bank account",
                resource_type="BankReconciliation",
                details={"bank_account_id": str(data.bank_account_id)},
            ) from exc

        logger.info(
            f"Started reconciliation {recon.id} for bank account {account.id} "
            f"({data.period_start} to {data.period_end})"
        )
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="bank_reconciliation",
            entity_id=recon.id,
            action=AuditAction.CREATE,
            user_id=user_id,
            new_values={
                "bank_account_id": account.id,
                "period_start": data.period_start,
                "period_end": data.period_end,
                "opening_balance": opening,
                "statement_balance": data.statement_balance,
            },
        )
        return recon

    async def cancel_reconciliation(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankReconciliation:
        """Cancel an open reconciliation. Bank transactions are not touched."""
        recon = await self._get_open(company_id, reconciliation_id)
        recon.status = ReconciliationStatus.CANCELLED
        recon.cancelled_at = datetime.now(timezone.utc)
        recon.cancelled_by_id = user_id
        await self.db.commit()

        logger.info(f"Cancelled reconciliation {recon.id}")
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="bank_reconciliation",
            entity_id=recon.id,
            action=AuditAction.CANCEL,
            user_id=user_id,
            old_values={"status": ReconciliationStatus.IN_PROGRESS},
            new_values={"status": ReconciliationStatus.CANCELLED},
        )
        return recon

    # ===========================================
    # CANDIDATES
    # ===========================================

    async def _claimed_document_ids(self, company_id: uuid.UUID) -> Set[uuid.UUID]:
        """Documents already matched by a reconciled transaction or an open reconciliation."""
        reconciled = await self.db.execute(
            select(BankTransaction.matched_document_id)
            .join(BankAccount, BankTransaction.bank_account_id == BankAccount.id)
            .where(and_(
                BankAccount.company_id == company_id,
                BankTransaction.matched_document_id.is_not(None),
            ))
        )
        pending = await self.db.execute(
            select(ReconciliationMatch.document_id)
            .join(BankReconciliation, ReconciliationMatch.reconciliation_id == BankReconciliation.id)
            .where(and_(
                BankReconciliation.company_id == company_id,
                BankReconciliation.status == ReconciliationStatus.IN_PROGRESS,
                ReconciliationMatch.document_id.is_not(None),
            ))
        )
        return set(reconciled.scalars().all()) | set(pending.scalars().all())

    async def _book_documents(
        self,
        recon: BankReconciliation,
        account: BankAccount,
        start: date,
        end: date,
    ) -> List[BookDocument]:
        """
        Unclaimed book documents dated between start and end, signed as the
        bank sees them and converted into the bank account's currency.
        """
        claimed = await self._claimed_document_ids(recon.company_id)
        documents: List[BookDocument] = []

        if account.gl_account_id:
            result = await self.db.execute(
                select(JournalEntryLine, JournalEntry)
                .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
                .where(and_(
                    JournalEntry.company_id == recon.company_id,
                    JournalEntry.status == JournalEntryStatus.POSTED,
                    JournalEntryLine.account_id == account.gl_account_id,
                    JournalEntry.entry_date >= start,
                    JournalEntry.entry_date <= end,
                ))
            )
            for line, entry in result.all():
                documents.append(BookDocument(
                    document_type=MatchedDocumentType.JOURNAL_LINE,
                    document_id=line.id,
                    document_date=entry.entry_date,
                    amount=line.signed_amount,
                    created_at=line.created_at,
                    journal_entry_id=entry.id,
                    description=line.description or entry.description,
                    reference=entry.reference,
                    currency=entry.currency,
                ))

        payments = await self.db.execute(
            select(Payment).where(and_(
                Payment.company_id == recon.company_id,
                Payment.payment_date >= start,
                Payment.payment_date <= end,
            ))
        )
        for payment in payments.scalars().all():
            documents.append(BookDocument(
                document_type=MatchedDocumentType.PAYMENT,
                document_id=payment.id,
                document_date=payment.payment_date,
                amount=payment.signed_amount,
                created_at=payment.created_at,
                description=payment.description,
                reference=payment.reference or payment.invoice_number,
                currency=payment.currency,
            ))

        expenses = await self.db.execute(
            select(Expense).where(and_(
                Expense.company_id == recon.company_id,
                Expense.deleted_at.is_(None),
                Expense.expense_date >= start,
                Expense.expense_date <= end,
            ))
        )
        for expense in expenses.scalars().all():
            documents.append(BookDocument(
                document_type=MatchedDocumentType.EXPENSE,
                document_id=expense.id,
                document_date=expense.expense_date,
                amount=expense.signed_amount,
                created_at=expense.created_at,
                description=expense.description,
                reference=expense.reference,
                currency=expense.currency,
            ))

        return await self._in_account_currency(
            [doc for doc in documents if doc.document_id not in claimed],
            account.currency,
        )

    async def _in_account_currency(self, documents: List[BookDocument], currency: str) -> List[BookDocument]:
        """
        Restate document amounts in the bank account's currency at the rate
        in force on each document date. A document with no usable rate cannot
        be compared and is left out with a warning.
        """
        converter = CurrencyService(self.db)
        converted: List[BookDocument] = []
        for doc in documents:
            if doc.currency.upper() != currency.upper():
                try:
                    doc.amount = await converter.convert_via_base(
                        doc.source_amount, doc.currency, currency, doc.document_date,
                    )
                except RateUnavailableException as exc:
                    logger.warning(
                        f"Skipping {doc.document_type.value} {doc.document_id} for matching: {exc.message}"
                    )
                    continue
            converted.append(doc)
        return converted

    async def _candidate_transactions(self, recon: BankReconciliation) -> List[BankTransaction]:
        already_matched = set(recon.reconciled_transaction_ids)
        result = await self.db.execute(
            select(BankTransaction)
            .where(and_(
                BankTransaction.bank_account_id == recon.bank_account_id,
                BankTransaction.transaction_date >= recon.period_start,
                BankTransaction.transaction_date <= recon.period_end,
                BankTransaction.is_reconciled.is_(False),
                BankTransaction.matched_document_id.is_(None),
            ))
            .order_by(BankTransaction.transaction_date, BankTransaction.created_at)
        )
        return [txn for txn in result.scalars().all() if txn.id not in already_matched]

    # ===========================================
    # BALANCES
    # ===========================================

    def _recalculate(self, recon: BankReconciliation) -> None:
        matched_total = sum((match.amount for match in recon.matches), ZERO)
        adjustments_total = sum((adj.amount for adj in recon.adjustments), ZERO)
        recon.book_balance = recon.opening_balance + matched_total
        recon.difference = recon.statement_balance - recon.book_balance - adjustments_total

    @staticmethod
    def _is_balanced(recon: BankReconciliation) -> bool:
        return abs(recon.difference) <= settings.amount_tolerance

    # ===========================================
    # MATCHING
    # ===========================================

    async def match_transactions(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> MatchResult:
        """
        Automatically pair unreconciled bank transactions in the period with
        book documents. Never forces a match to make the period balance.
        """
        recon = await self._get_open(company_id, reconciliation_id)
        account = await self._get_bank_account(company_id, recon.bank_account_id)

        window = settings.match_date_window_days
        margin = timedelta(days=window)
        documents = await self._book_documents(
            recon, account, recon.period_start - margin, recon.period_end + margin,
        )
        transactions = await self._candidate_transactions(recon)

        matched: List[ReconciliationMatch] = []
        unmatched_bank: List[BankTransaction] = []
        tied: Dict[uuid.UUID, List[BookDocument]] = {}
        for txn in transactions:
            best = best_candidates(txn, documents, window, settings.amount_tolerance)
            if len(best) != 1:
                unmatched_bank.append(txn)
                if best:
                    tied[txn.id] = best
                continue
            doc = best[0]
            documents.remove(doc)
            match = ReconciliationMatch(
                reconciliation_id=recon.id,
                bank_transaction_id=txn.id,
                document_type=doc.document_type,
                document_id=doc.document_id,
                journal_entry_id=doc.journal_entry_id,
                amount=txn.amount,
                match_method=MatchMethod.AUTO,
                matched_by_id=user_id,
            )
            recon.matches.append(match)
            matched.append(match)

        self._recalculate(recon)
        await self.db.commit()

        unmatched_book = [
            doc for doc in documents
            if recon.period_start <= doc.document_date <= recon.period_end
        ]
        # A later transaction may have taken one of the tied documents
        remaining = {doc.document_id for doc in documents}
        ambiguous = {}
        for txn_id, docs in tied.items():
            still_open = [doc for doc in docs if doc.document_id in remaining]
            if still_open:
                ambiguous[txn_id] = still_open

        logger.info(
            f"Reconciliation {recon.id}: matched {len(matched)}, "
            f"{len(unmatched_bank)} bank and {len(unmatched_book)} book items unmatched, "
            f"{len(ambiguous)} ambiguous, difference {recon.difference}"
        )
        return MatchResult(
            reconciliation=recon,
            matched=matched,
            unmatched_bank=unmatched_bank,
            unmatched_book=unmatched_book,
            ambiguous=ambiguous,
        )

    async def _find_document(
        self,
        company_id: uuid.UUID,
        document_type: MatchedDocumentType,
        document_id: uuid.UUID,
    ) -> Optional[uuid.UUID]:
        """Verify a book document exists for the company; returns its journal entry id if any."""
        if document_type == MatchedDocumentType.JOURNAL_LINE:
            result = await self.db.execute(
                select(JournalEntry.id, JournalEntry.status)
                .join(JournalEntryLine, JournalEntryLine.journal_entry_id == JournalEntry.id)
                .where(and_(
                    JournalEntryLine.id == document_id,
                    JournalEntry.company_id == company_id,
                ))
            )
            row = result.one_or_none()
            if row is None:
                raise NotFoundException("JournalEntryLine", document_id)
            if row.status == JournalEntryStatus.VOID:
                raise ValidationException(
                    "Cannot match a line of a voided journal entry",
                    field="document_id",
                    rule="void_document",
                )
            return row.id

        model = Payment if document_type == MatchedDocumentType.PAYMENT else Expense
        conditions = [model.id == document_id, model.company_id == company_id]
        if model is Expense:
            conditions.append(Expense.deleted_at.is_(None))
        result = await self.db.execute(select(model.id).where(and_(*conditions)))
        if result.scalar_one_or_none() is None:
            raise NotFoundException(model.__name__, document_id)
        return None

    async def manual_match(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        bank_transaction_id: uuid.UUID,
        document_type: Optional[MatchedDocumentType] = None,
        document_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankReconciliation:
        """
        Mark a bank transaction as cleared in this period by hand.

        Without a document the transaction is cleared against the statement
        alone (document type NONE).
        """
        recon = await self._get_open(company_id, reconciliation_id)

        result = await self.db.execute(
            select(BankTransaction).where(and_(
                BankTransaction.id == bank_transaction_id,
                BankTransaction.bank_account_id == recon.bank_account_id,
            ))
        )
        txn = result.scalar_one_or_none()
        if not txn:
            raise NotFoundException("BankTransaction", bank_transaction_id)
        if txn.is_reconciled:
            raise CannotModifyException("BankTransaction", txn.id, "reconciled")
        if txn.id in recon.reconciled_transaction_ids:
            raise ConflictException(
                "Bank transaction is already matched in this reconciliation",
                resource_type="ReconciliationMatch",
                code=ErrorCode.DUPLICATE_ENTRY,
            )

        journal_entry_id = None
        if document_id is not None and document_type not in (None, MatchedDocumentType.NONE):
            if document_id in await self._claimed_document_ids(company_id):
                raise ConflictException(
                    "Book document is already matched",
                    resource_type="ReconciliationMatch",
                    code=ErrorCode.DUPLICATE_ENTRY,
                )
            journal_entry_id = await self._find_document(company_id, document_type, document_id)
        else:
            document_type = MatchedDocumentType.NONE
            document_id = None

        recon.matches.append(ReconciliationMatch(
            reconciliation_id=recon.id,
            bank_transaction_id=txn.id,
            document_type=document_type,
            document_id=document_id,
            journal_entry_id=journal_entry_id,
            amount=txn.amount,
            match_method=MatchMethod.MANUAL,
            matched_by_id=user_id,
        ))
        self._recalculate(recon)
        await self.db.commit()
        logger.info(f"Reconciliation {recon.id}: manually matched transaction {txn.id}")
        return recon

    async def unmatch(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        bank_transaction_id: uuid.UUID,
    ) -> BankReconciliation:
        """Remove a transaction's match from an open reconciliation."""
        recon = await self._get_open(company_id, reconciliation_id)
        match = next((m for m in recon.matches if m.bank_transaction_id == bank_transaction_id), None)
        if match is None:
            raise NotFoundException(
                "ReconciliationMatch",
                message=f"Bank transaction '{bank_transaction_id}' is not matched in this reconciliation",
            )
        recon.matches.remove(match)
        self._recalculate(recon)
        await self.db.commit()
        logger.info(f"Reconciliation {recon.id}: unmatched transaction {bank_transaction_id}")
        return recon

    # ===========================================
    # ADJUSTMENTS
    # ===========================================

    def _append_adjustment(
        self,
        recon: BankReconciliation,
        data: AdjustmentCreate,
        user_id: Optional[uuid.UUID],
    ) -> ReconciliationAdjustment:
        adjustment = ReconciliationAdjustment(
            reconciliation_id=recon.id,
            description=data.description,
            amount=data.amount,
            side=data.side,
            journal_entry_id=data.journal_entry_id,
            created_by_id=user_id,
        )
        recon.adjustments.append(adjustment)
        return adjustment

    async def add_adjustment(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        data: AdjustmentCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankReconciliation:
        """Record an adjustment that explains part of the difference."""
        recon = await self._get_open(company_id, reconciliation_id)
        self._append_adjustment(recon, data, user_id)
        self._recalculate(recon)
        await self.db.commit()
        logger.info(f"Reconciliation {recon.id}: adjustment of {data.amount} ({data.side.value}), difference {recon.difference}")
        return recon

    # ===========================================
    # COMPLETION
    # ===========================================

    async def complete_reconciliation(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
        adjustments: Optional[List[AdjustmentCreate]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> BankReconciliation:
        """
        Close the period.

        Fails unless the difference, after adjustments, is within tolerance.
        Marking every matched transaction reconciled, closing the period and
        updating the bank account all commit together.
        """
        adjustments = adjustments or []

        async def _complete() -> BankReconciliation:
            recon = await self._get_open(company_id, reconciliation_id)
            for data in adjustments:
                self._append_adjustment(recon, data, user_id)
            self._recalculate(recon)

            if not self._is_balanced(recon):
                raise ValidationException(
                    f"Reconciliation does not balance: difference of {recon.difference}",
                    field="difference",
                    rule="unbalanced_reconciliation",
                    details={"difference": str(recon.difference)},
                )

            now = datetime.now(timezone.utc)
            for match in recon.matches:
                result = await self.db.execute(
                    update(BankTransaction)
                    .where(and_(
                        BankTransaction.id == match.bank_transaction_id,
                        BankTransaction.is_reconciled.is_(False),
                    ))
                    .values(
                        is_reconciled=True,
                        reconciled_at=now,
                        reconciled_by_id=user_id,
                        matched_document_type=match.document_type,
                        matched_document_id=match.document_id,
                        journal_entry_id=match.journal_entry_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ConflictException(
                        f"Bank transaction {match.bank_transaction_id} was reconciled elsewhere",
                        resource_type="BankTransaction",
                        code=ErrorCode.ALREADY_PROCESSED,
                    )

            recon.status = ReconciliationStatus.COMPLETED
            recon.closing_balance = recon.statement_balance
            recon.completed_at = now
            recon.completed_by_id = user_id

            # Statement balance plus whatever the bank has reported since
            later = await self.db.execute(
                select(func.coalesce(func.sum(BankTransaction.amount), 0)).where(and_(
                    BankTransaction.bank_account_id == recon.bank_account_id,
                    BankTransaction.transaction_date > recon.period_end,
                ))
            )
            await self.db.execute(
                update(BankAccount)
                .where(BankAccount.id == recon.bank_account_id)
                .values(
                    last_reconciled_date=recon.period_end,
                    last_reconciled_balance=recon.statement_balance,
                    current_balance=recon.statement_balance + Decimal(str(later.scalar() or 0)),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return recon

        recon = await run_with_storage_retry(self.db, _complete, "reconciliation completion")

        logger.info(
            f"Completed reconciliation {recon.id}: {len(recon.matches)} transactions reconciled, "
            f"statement balance {recon.statement_balance}"
        )
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="bank_reconciliation",
            entity_id=recon.id,
            action=AuditAction.COMPLETE,
            user_id=user_id,
            old_values={"status": ReconciliationStatus.IN_PROGRESS},
            new_values={
                "status": ReconciliationStatus.COMPLETED,
                "statement_balance": recon.statement_balance,
                "reconciled_transactions": len(recon.matches),
                "adjustments": len(recon.adjustments),
            },
        )
        return recon

    # ===========================================
    # SUMMARY
    # ===========================================

    async def get_reconciliation_summary(
        self,
        company_id: uuid.UUID,
        reconciliation_id: uuid.UUID,
    ) -> Dict[str, Any]:
        """Totals and current difference for one reconciliation."""
        recon = await self.get_reconciliation(company_id, reconciliation_id)

        unmatched_bank = 0
        if recon.is_open:
            unmatched_bank = len(await self._candidate_transactions(recon))

        matched_total = sum((m.amount for m in recon.matches), ZERO)
        adjustments_total = sum((a.amount for a in recon.adjustments), ZERO)
        return {
            "reconciliation_id": recon.id,
            "status": recon.status,
            "opening_balance": recon.opening_balance,
            "statement_balance": recon.statement_balance,
            "book_balance": recon.book_balance,
            "matched_count": len(recon.matches),
            "matched_total": matched_total,
            "adjustments_total": adjustments_total,
            "unmatched_bank_count": unmatched_bank,
            "difference": recon.difference,
            "is_balanced": self._is_balanced(recon),
        }


def get_reconciliation_service(db: AsyncSession) -> ReconciliationService:
    """Factory function for ReconciliationService."""
    return ReconciliationService(db)
