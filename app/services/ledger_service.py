"""
YaadBooks Ledger - Ledger Service

Builds and persists balanced journal entries.

Validation runs in a fixed order and stops at the first failure:
1. At least two lines
2. Each line has exactly one non-zero side, both sides non-negative
3. Total debits equal total credits within the amount tolerance

An entry and all of its lines are written in one transaction. Posting
does not touch any running balance; account totals are derived from
posted lines on read. Foreign-currency entries carry the rate in force on
the entry date and every line is also stored in the base currency.
Voiding flips the status and keeps the lines.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.accounting import (
    Account,
    EntryNumberSequence,
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
)
from app.models.audit import AuditAction
from app.schemas.ledger import AccountCreate, JournalEntryCreate
from app.services.audit_service import AuditService
from app.services.currency_service import CurrencyService, to_base
from app.utils.error_handling import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    UnbalancedEntryException,
    ValidationException,
)
from app.utils.storage import run_with_storage_retry

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base-36 value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def format_entry_number(sequence_value: int, prefix: Optional[str] = None, width: Optional[int] = None) -> str:
    """Render a sequence value as e.g. JE-00001Z."""
    prefix = prefix or settings.entry_number_prefix
    width = width or settings.entry_number_width
    return f"{prefix}-{to_base36(sequence_value).rjust(width, '0')}"


@dataclass
class ValidatedLine:
    """A journal line that passed validation, amounts rounded to cents."""
    account_id: uuid.UUID
    debit_amount: Decimal
    credit_amount: Decimal
    description: Optional[str] = None


def _money(value: Any) -> Decimal:
    return Decimal(value if value is not None else 0).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_lines(lines: Sequence[Any]) -> Tuple[List[ValidatedLine], Decimal, Decimal]:
    """
    Validate proposed journal lines.

    Returns the normalized lines with their debit and credit totals.
    Raises ValidationException naming the first rule that fails.
    """
    if lines is None or len(lines) < 2:
        raise ValidationException(
            "A journal entry needs at least two lines",
            field="lines",
            rule="min_lines",
        )

    validated: List[ValidatedLine] = []
    for number, line in enumerate(lines, start=1):
        debit = _money(getattr(line, "debit_amount", None))
        credit = _money(getattr(line, "credit_amount", None))
        if debit < 0 or credit < 0:
            raise ValidationException(
                f"Line {number}: amounts must not be negative",
                field=f"lines.{number - 1}",
                rule="negative_amount",
            )
        if (debit > 0) == (credit > 0):
            raise ValidationException(
                f"Line {number}: exactly one of debit or credit must be non-zero",
                field=f"lines.{number - 1}",
                rule="single_sided_line",
            )
        validated.append(ValidatedLine(
            account_id=line.account_id,
            debit_amount=debit,
            credit_amount=credit,
            description=getattr(line, "description", None),
        ))

    total_debit = sum((line.debit_amount for line in validated), ZERO)
    total_credit = sum((line.credit_amount for line in validated), ZERO)
    if abs(total_debit - total_credit) > settings.amount_tolerance:
        raise UnbalancedEntryException(total_debit, total_credit)

    return validated, total_debit, total_credit


class LedgerService:
    """Service for posting, voiding and reading journal entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # ACCOUNTS
    # ===========================================

    async def create_account(
        self,
        company_id: uuid.UUID,
        data: AccountCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> Account:
        """Create a ledger account. Codes are unique per company."""
        existing = await self.db.execute(
            select(Account.id).where(and_(
                Account.company_id == company_id,
                Account.code == data.code,
            ))
        )
        if existing.scalar_one_or_none():
            raise ConflictException(
                f"Account with code '{data.code}' already exists",
                resource_type="Account",
                code=ErrorCode.DUPLICATE_ENTRY,
                details={"field": "code", "value": data.code},
            )

        account = Account(
            company_id=company_id,
            code=data.code,
            name=data.name,
            account_type=data.account_type,
            description=data.description,
            created_by_id=user_id,
            updated_by_id=user_id,
        )
        self.db.add(account)
        await self.db.commit()
        return account

    async def list_accounts(self, company_id: uuid.UUID, include_inactive: bool = False) -> List[Account]:
        query = select(Account).where(Account.company_id == company_id)
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        result = await self.db.execute(query.order_by(Account.code))
        return list(result.scalars().all())

    async def _check_accounts(self, company_id: uuid.UUID, account_ids: Iterable[uuid.UUID]) -> None:
        wanted = set(account_ids)
        result = await self.db.execute(
            select(Account).where(and_(
                Account.company_id == company_id,
                Account.id.in_(wanted),
            ))
        )
        found = {account.id: account for account in result.scalars().all()}

        missing = wanted - set(found)
        if missing:
            raise ValidationException(
                "Journal lines reference accounts that do not exist for this company",
                field="lines",
                rule="unknown_account",
                details={"account_ids": sorted(str(a) for a in missing)},
            )
        inactive = [str(a.id) for a in found.values() if not a.is_active]
        if inactive:
            raise ValidationException(
                "Journal lines reference inactive accounts",
                field="lines",
                rule="inactive_account",
                details={"account_ids": sorted(inactive)},
            )

    # ===========================================
    # ENTRY NUMBERS
    # ===========================================

    async def _issue_sequence_value(self, company_id: uuid.UUID, prefix: str) -> int:
        result = await self.db.execute(
            update(EntryNumberSequence)
            .where(and_(
                EntryNumberSequence.company_id == company_id,
                EntryNumberSequence.prefix == prefix,
            ))
            .values(next_value=EntryNumberSequence.next_value + 1)
            .returning(EntryNumberSequence.next_value)
            .execution_options(synchronize_session=False)
        )
        bumped = result.scalar_one_or_none()
        if bumped is not None:
            return bumped - 1

        # First entry for this company; a concurrent first insert surfaces
        # as IntegrityError and the caller retries.
        self.db.add(EntryNumberSequence(company_id=company_id, prefix=prefix, next_value=2))
        await self.db.flush()
        return 1

    async def _next_entry_number(self, company_id: uuid.UUID) -> str:
        """
        Issue the next entry number from the company's sequence.

        Numbers already present (imported history, manual numbering) are
        skipped rather than reused.
        """
        prefix = settings.entry_number_prefix
        for _ in range(settings.entry_number_max_attempts):
            candidate = format_entry_number(await self._issue_sequence_value(company_id, prefix), prefix)
            taken = await self.db.execute(
                select(JournalEntry.id).where(and_(
                    JournalEntry.company_id == company_id,
                    JournalEntry.entry_number == candidate,
                ))
            )
            if taken.scalar_one_or_none() is None:
                return candidate
            logger.warning(f"Entry number {candidate} already used for company {company_id}, skipping")

        raise ConflictException(
            "Could not allocate a unique journal entry number",
            resource_type="JournalEntry",
        )

    # ===========================================
    # POSTING
    # ===========================================

    async def post_entry(
        self,
        company_id: uuid.UUID,
        data: JournalEntryCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> JournalEntry:
        """
        Validate and persist a journal entry with status POSTED.

        The entry and its lines are committed together or not at all.
        """
        lines, total_debit, total_credit = validate_lines(data.lines)

        currency = data.currency.upper()
        exchange_rate = Decimal("1")
        if currency != settings.base_currency:
            exchange_rate = await CurrencyService(self.db).require_rate(
                currency, settings.base_currency, data.entry_date,
            )

        async def _persist() -> JournalEntry:
            await self._check_accounts(company_id, (line.account_id for line in lines))
            entry_number = await self._next_entry_number(company_id)

            entry = JournalEntry(
                company_id=company_id,
                entry_number=entry_number,
                entry_date=data.entry_date,
                description=data.description,
                reference=data.reference,
                currency=currency,
                exchange_rate=exchange_rate,
                source_module=data.source_module or "manual",
                total_debit=total_debit,
                total_credit=total_credit,
                status=JournalEntryStatus.POSTED,
                created_by_id=user_id,
                lines=[
                    JournalEntryLine(
                        account_id=line.account_id,
                        line_number=number,
                        description=line.description,
                        debit_amount=line.debit_amount,
                        credit_amount=line.credit_amount,
                        base_debit_amount=to_base(line.debit_amount, exchange_rate),
                        base_credit_amount=to_base(line.credit_amount, exchange_rate),
                    )
                    for number, line in enumerate(lines, start=1)
                ],
            )
            self.db.add(entry)
            await self.db.commit()
            return entry

        entry = None
        attempts = settings.entry_number_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                entry = await run_with_storage_retry(self.db, _persist, "journal entry posting")
                break
            except IntegrityError as exc:
                # Lost a race for the entry number or the sequence row
                if attempt == attempts:
                    raise ConflictException(
                        "Could not allocate a unique journal entry number",
                        resource_type="JournalEntry",
                    ) from exc
                logger.warning(f"Entry number collision for company {company_id}, retrying ({attempt}/{attempts})")

        logger.info(
            f"Posted journal entry {entry.entry_number} for company {company_id}: "
            f"{total_debit} DR / {total_credit} CR"
        )
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="journal_entry",
            entity_id=entry.id,
            action=AuditAction.CREATE,
            user_id=user_id,
            new_values={
                "entry_number": entry.entry_number,
                "entry_date": entry.entry_date,
                "description": entry.description,
                "total_debit": total_debit,
                "total_credit": total_credit,
                "line_count": len(lines),
            },
        )
        return entry

    async def void_entry(
        self,
        company_id: uuid.UUID,
        entry_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> JournalEntry:
        """Flip a POSTED entry to VOID. Voiding twice is a conflict."""
        entry = await self.get_entry(company_id, entry_id)
        if entry.status == JournalEntryStatus.VOID:
            raise ConflictException(
                f"Journal entry {entry.entry_number} is already void",
                resource_type="JournalEntry",
                code=ErrorCode.ALREADY_PROCESSED,
            )

        voided_at = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(JournalEntry)
            .where(and_(
                JournalEntry.id == entry_id,
                JournalEntry.company_id == company_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
            ))
            .values(
                status=JournalEntryStatus.VOID,
                voided_at=voided_at,
                voided_by_id=user_id,
                void_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise ConflictException(
                f"Journal entry {entry.entry_number} is already void",
                resource_type="JournalEntry",
                code=ErrorCode.ALREADY_PROCESSED,
            )
        await self.db.commit()

        entry = await self.get_entry(company_id, entry_id)
        logger.info(f"Voided journal entry {entry.entry_number} for company {company_id}")
        await AuditService(self.db).log_action(
            company_id=company_id,
            entity_type="journal_entry",
            entity_id=entry.id,
            action=AuditAction.VOID,
            user_id=user_id,
            old_values={"status": JournalEntryStatus.POSTED},
            new_values={"status": JournalEntryStatus.VOID, "reason": reason},
        )
        return entry

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_entry(self, company_id: uuid.UUID, entry_id: uuid.UUID) -> JournalEntry:
        result = await self.db.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(and_(
                JournalEntry.id == entry_id,
                JournalEntry.company_id == company_id,
            ))
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundException("JournalEntry", entry_id)
        return entry

    async def list_entries(
        self,
        company_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_void: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[JournalEntry], int]:
        """List entries newest first. Voided entries are hidden unless asked for."""
        query = select(JournalEntry).where(JournalEntry.company_id == company_id)
        if start_date:
            query = query.where(JournalEntry.entry_date >= start_date)
        if end_date:
            query = query.where(JournalEntry.entry_date <= end_date)
        if not include_void:
            query = query.where(JournalEntry.status != JournalEntryStatus.VOID)

        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        query = (
            query.options(selectinload(JournalEntry.lines))
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_account_totals(
        self,
        company_id: uuid.UUID,
        account_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Base-currency debit and credit totals for an account over posted (non-void) entries."""
        conditions = [
            JournalEntry.company_id == company_id,
            JournalEntry.status == JournalEntryStatus.POSTED,
            JournalEntryLine.account_id == account_id,
        ]
        if start_date:
            conditions.append(JournalEntry.entry_date >= start_date)
        if end_date:
            conditions.append(JournalEntry.entry_date <= end_date)

        result = await self.db.execute(
            select(
                func.coalesce(func.sum(JournalEntryLine.base_debit_amount), 0),
                func.coalesce(func.sum(JournalEntryLine.base_credit_amount), 0),
            )
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(and_(*conditions))
        )
        total_debit, total_credit = result.one()
        total_debit = _money(total_debit)
        total_credit = _money(total_credit)
        return {
            "account_id": account_id,
            "total_debit": total_debit,
            "total_credit": total_credit,
            "balance": total_debit - total_credit,
            "start_date": start_date,
            "end_date": end_date,
        }


def get_ledger_service(db: AsyncSession) -> LedgerService:
    """Factory function for LedgerService."""
    return LedgerService(db)
