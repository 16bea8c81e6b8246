"""
YaadBooks Ledger - Ledger Service Tests

Journal entry validation, posting, entry numbers, voiding and account
totals.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.models.accounting import AccountType, JournalEntryStatus
from app.models.audit import AuditAction, AuditLog
from app.schemas.ledger import AccountCreate, JournalEntryCreate, JournalEntryLineCreate
from app.services.currency_service import CurrencyService
from app.services.ledger_service import (
    LedgerService,
    format_entry_number,
    to_base36,
    validate_lines,
)
from app.utils.error_handling import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    RateUnavailableException,
    UnbalancedEntryException,
    ValidationException,
)


def _line(account_id, debit="0", credit="0", description=None):
    return JournalEntryLineCreate(
        account_id=account_id,
        debit_amount=Decimal(debit),
        credit_amount=Decimal(credit),
        description=description,
    )


def _entry(lines, entry_date=date(2024, 1, 15), description="Cash sale"):
    return JournalEntryCreate(entry_date=entry_date, description=description, lines=lines)


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidateLines:
    """Rules run in order and stop at the first failure."""

    def test_balanced_split(self):
        cash, sales, tax = uuid4(), uuid4(), uuid4()
        lines, total_debit, total_credit = validate_lines([
            _line(cash, debit="100.00"),
            _line(sales, credit="60.00"),
            _line(tax, credit="40.00"),
        ])

        assert len(lines) == 3
        assert total_debit == Decimal("100.00")
        assert total_credit == Decimal("100.00")

    def test_unbalanced(self):
        with pytest.raises(UnbalancedEntryException) as exc_info:
            validate_lines([_line(uuid4(), debit="100.00"), _line(uuid4(), credit="99.00")])

        assert exc_info.value.code == ErrorCode.UNBALANCED_ENTRY
        assert exc_info.value.details["total_debit"] == "100.00"
        assert exc_info.value.details["total_credit"] == "99.00"

    def test_within_tolerance(self):
        _, total_debit, total_credit = validate_lines([
            _line(uuid4(), debit="100.00"),
            _line(uuid4(), credit="99.99"),
        ])
        assert total_debit - total_credit == Decimal("0.01")

    def test_single_line(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_lines([_line(uuid4(), debit="100.00")])
        assert exc_info.value.rule == "min_lines"

    def test_empty(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_lines([])
        assert exc_info.value.rule == "min_lines"

    def test_both_sides_set(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_lines([
                _line(uuid4(), debit="50.00", credit="50.00"),
                _line(uuid4(), credit="0.00", debit="0.00"),
            ])
        assert exc_info.value.rule == "single_sided_line"
        assert exc_info.value.field == "lines.0"

    def test_zero_line(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_lines([_line(uuid4(), debit="100.00"), _line(uuid4())])
        assert exc_info.value.rule == "single_sided_line"

    def test_negative_amount_checked_before_shape(self):
        bad = SimpleNamespace(account_id=uuid4(), debit_amount=Decimal("-5"), credit_amount=Decimal("0"))
        with pytest.raises(ValidationException) as exc_info:
            validate_lines([bad, _line(uuid4(), credit="5.00")])
        assert exc_info.value.rule == "negative_amount"

    def test_amounts_rounded_to_cents(self):
        lines, total_debit, _ = validate_lines([
            _line(uuid4(), debit="10.005"),
            _line(uuid4(), credit="10.01"),
        ])
        assert lines[0].debit_amount == Decimal("10.01")
        assert total_debit == Decimal("10.01")


class TestEntryNumbers:
    """Tests for base-36 entry numbers."""

    def test_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"

    def test_format(self):
        assert format_entry_number(35, prefix="JE", width=6) == "JE-00000Z"
        assert format_entry_number(1, prefix="JE", width=6) == "JE-000001"


# =============================================================================
# ACCOUNTS
# =============================================================================

class TestAccounts:
    """Tests for chart of accounts operations."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, db_session, company_id, user_id):
        service = LedgerService(db_session)
        await service.create_account(
            company_id,
            AccountCreate(code="2000", name="Accounts Payable", account_type=AccountType.LIABILITY),
            user_id,
        )
        await service.create_account(
            company_id,
            AccountCreate(code="1000", name="Petty Cash", account_type=AccountType.ASSET),
            user_id,
        )

        accounts = await service.list_accounts(company_id)
        assert [a.code for a in accounts] == ["1000", "2000"]

    @pytest.mark.asyncio
    async def test_duplicate_code(self, db_session, company_id, cash_account):
        service = LedgerService(db_session)
        with pytest.raises(ConflictException) as exc_info:
            await service.create_account(
                company_id,
                AccountCreate(code=cash_account.code, name="Another", account_type=AccountType.ASSET),
            )
        assert exc_info.value.code == ErrorCode.DUPLICATE_ENTRY

    @pytest.mark.asyncio
    async def test_codes_are_per_company(self, db_session, cash_account):
        service = LedgerService(db_session)
        other = await service.create_account(
            uuid4(),
            AccountCreate(code=cash_account.code, name="Cash", account_type=AccountType.ASSET),
        )
        assert other.code == cash_account.code


# =============================================================================
# POSTING
# =============================================================================

class TestPostEntry:
    """Tests for posting journal entries."""

    @pytest.mark.asyncio
    async def test_post_balanced_entry(
        self, db_session, company_id, user_id, cash_account, revenue_account, expense_account,
    ):
        service = LedgerService(db_session)
        entry = await service.post_entry(
            company_id,
            _entry([
                _line(cash_account.id, debit="100.00"),
                _line(revenue_account.id, credit="60.00"),
                _line(expense_account.id, credit="40.00"),
            ]),
            user_id,
        )

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.entry_number == "JE-000001"
        assert entry.total_debit == Decimal("100.00")
        assert entry.total_credit == Decimal("100.00")
        assert [line.line_number for line in entry.lines] == [1, 2, 3]

        stored = await service.get_entry(company_id, entry.id)
        assert len(stored.lines) == 3

    @pytest.mark.asyncio
    async def test_unbalanced_entry_is_not_stored(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        with pytest.raises(UnbalancedEntryException):
            await service.post_entry(
                company_id,
                _entry([
                    _line(cash_account.id, debit="100.00"),
                    _line(revenue_account.id, credit="99.00"),
                ]),
            )

        entries, total = await service.list_entries(company_id)
        assert entries == []
        assert total == 0

    @pytest.mark.asyncio
    async def test_entry_numbers_increase(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        numbers = []
        for _ in range(3):
            entry = await service.post_entry(
                company_id,
                _entry([_line(cash_account.id, debit="10.00"), _line(revenue_account.id, credit="10.00")]),
            )
            numbers.append(entry.entry_number)

        assert numbers == ["JE-000001", "JE-000002", "JE-000003"]

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session, company_id, cash_account):
        service = LedgerService(db_session)
        with pytest.raises(ValidationException) as exc_info:
            await service.post_entry(
                company_id,
                _entry([_line(cash_account.id, debit="10.00"), _line(uuid4(), credit="10.00")]),
            )
        assert exc_info.value.rule == "unknown_account"

    @pytest.mark.asyncio
    async def test_other_company_account_is_unknown(self, db_session, cash_account, revenue_account):
        service = LedgerService(db_session)
        with pytest.raises(ValidationException) as exc_info:
            await service.post_entry(
                uuid4(),
                _entry([_line(cash_account.id, debit="10.00"), _line(revenue_account.id, credit="10.00")]),
            )
        assert exc_info.value.rule == "unknown_account"

    @pytest.mark.asyncio
    async def test_inactive_account(self, db_session, company_id, cash_account, revenue_account):
        revenue_account.is_active = False
        await db_session.commit()

        service = LedgerService(db_session)
        with pytest.raises(ValidationException) as exc_info:
            await service.post_entry(
                company_id,
                _entry([_line(cash_account.id, debit="10.00"), _line(revenue_account.id, credit="10.00")]),
            )
        assert exc_info.value.rule == "inactive_account"

    @pytest.mark.asyncio
    async def test_post_writes_audit_record(self, db_session, company_id, user_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        entry = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="10.00"), _line(revenue_account.id, credit="10.00")]),
            user_id,
        )

        result = await db_session.execute(
            select(AuditLog).where(AuditLog.target_entity_id == str(entry.id))
        )
        log = result.scalar_one()
        assert log.action == AuditAction.CREATE
        assert log.user_id == user_id
        assert log.new_values["total_debit"] == "10.00"


# =============================================================================
# VOIDING
# =============================================================================

class TestVoidEntry:
    """Tests for the POSTED -> VOID transition."""

    @pytest.mark.asyncio
    async def test_void(self, db_session, company_id, user_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        entry = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="50.00"), _line(revenue_account.id, credit="50.00")]),
        )

        voided = await service.void_entry(company_id, entry.id, user_id, reason="Duplicate receipt")

        assert voided.status == JournalEntryStatus.VOID
        assert voided.void_reason == "Duplicate receipt"
        assert voided.voided_by_id == user_id
        assert voided.voided_at is not None
        # Lines stay in place
        assert len(voided.lines) == 2

    @pytest.mark.asyncio
    async def test_void_twice_is_conflict(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        entry = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="50.00"), _line(revenue_account.id, credit="50.00")]),
        )
        await service.void_entry(company_id, entry.id)

        with pytest.raises(ConflictException) as exc_info:
            await service.void_entry(company_id, entry.id)
        assert exc_info.value.code == ErrorCode.ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_void_missing_entry(self, db_session, company_id):
        service = LedgerService(db_session)
        with pytest.raises(NotFoundException):
            await service.void_entry(company_id, uuid4())

    @pytest.mark.asyncio
    async def test_voided_entries_hidden_from_list(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        kept = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="10.00"), _line(revenue_account.id, credit="10.00")]),
        )
        gone = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="20.00"), _line(revenue_account.id, credit="20.00")]),
        )
        await service.void_entry(company_id, gone.id)

        entries, total = await service.list_entries(company_id)
        assert [e.id for e in entries] == [kept.id]
        assert total == 1

        entries, total = await service.list_entries(company_id, include_void=True)
        assert total == 2


# =============================================================================
# TOTALS
# =============================================================================

class TestAccountTotals:
    """Totals come from posted lines only."""

    @pytest.mark.asyncio
    async def test_totals_exclude_void(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="100.00"), _line(revenue_account.id, credit="100.00")]),
        )
        voided = await service.post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="40.00"), _line(revenue_account.id, credit="40.00")]),
        )
        await service.void_entry(company_id, voided.id)

        totals = await service.get_account_totals(company_id, cash_account.id)
        assert totals["total_debit"] == Decimal("100.00")
        assert totals["total_credit"] == Decimal("0.00")
        assert totals["balance"] == Decimal("100.00")

        revenue = await service.get_account_totals(company_id, revenue_account.id)
        assert revenue["balance"] == Decimal("-100.00")

    @pytest.mark.asyncio
    async def test_totals_date_range(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        await service.post_entry(
            company_id,
            _entry(
                [_line(cash_account.id, debit="100.00"), _line(revenue_account.id, credit="100.00")],
                entry_date=date(2024, 1, 10),
            ),
        )
        await service.post_entry(
            company_id,
            _entry(
                [_line(cash_account.id, debit="25.00"), _line(revenue_account.id, credit="25.00")],
                entry_date=date(2024, 2, 10),
            ),
        )

        totals = await service.get_account_totals(
            company_id, cash_account.id, start_date=date(2024, 2, 1), end_date=date(2024, 2, 29),
        )
        assert totals["total_debit"] == Decimal("25.00")


# =============================================================================
# FOREIGN CURRENCY
# =============================================================================

class TestForeignCurrencyEntries:
    """Entries in another currency carry base-currency amounts."""

    def _usd_entry(self, cash_account, revenue_account, amount="100.00"):
        return JournalEntryCreate(
            entry_date=date(2024, 1, 20),
            description="USD invoice settled",
            currency="usd",
            lines=[_line(cash_account.id, debit=amount), _line(revenue_account.id, credit=amount)],
        )

    @pytest.mark.asyncio
    async def test_base_amounts_recorded(self, db_session, company_id, cash_account, revenue_account):
        await CurrencyService(db_session).upsert_rate("USD", "JMD", Decimal("155.231"), date(2024, 1, 19))

        service = LedgerService(db_session)
        entry = await service.post_entry(company_id, self._usd_entry(cash_account, revenue_account, "100.005"))

        assert entry.currency == "USD"
        assert entry.exchange_rate == Decimal("155.231")
        cash_line = next(line for line in entry.lines if line.account_id == cash_account.id)
        assert cash_line.debit_amount == Decimal("100.01")
        # 100.01 x 155.231 = 15524.65231
        assert cash_line.base_debit_amount == Decimal("15524.65")
        assert cash_line.base_credit_amount == Decimal("0.00")

        totals = await service.get_account_totals(company_id, cash_account.id)
        assert totals["total_debit"] == Decimal("15524.65")

    @pytest.mark.asyncio
    async def test_base_entry_uses_unit_rate(self, db_session, company_id, cash_account, revenue_account):
        entry = await LedgerService(db_session).post_entry(
            company_id,
            _entry([_line(cash_account.id, debit="250.00"), _line(revenue_account.id, credit="250.00")]),
        )

        assert entry.exchange_rate == Decimal("1")
        assert [line.base_debit_amount for line in entry.lines] == [Decimal("250.00"), Decimal("0.00")]

    @pytest.mark.asyncio
    async def test_missing_rate_rejects_entry(self, db_session, company_id, cash_account, revenue_account):
        service = LedgerService(db_session)
        with pytest.raises(RateUnavailableException) as exc_info:
            await service.post_entry(company_id, self._usd_entry(cash_account, revenue_account))
        assert exc_info.value.code == ErrorCode.RATE_UNAVAILABLE

        entries, total = await service.list_entries(company_id)
        assert total == 0
