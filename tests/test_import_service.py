"""
YaadBooks Ledger - Bank Import Service Tests

Statement imports, duplicate detection and manual transactions.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.models.banking import BankAccount, BankTransaction, BankTransactionType, ImportBatchStatus
from app.schemas.banking import BankAccountCreate, ManualTransactionCreate
from app.services.bank_import_service import BankImportService, ImportDedupPolicy
from app.services.statement_parser import DetectedFormat
from app.utils.error_handling import (
    InvalidAmountException,
    NotFoundException,
    StatementParseException,
    StorageException,
)


STATEMENT_CSV = (
    b"Date,Description,Amount,Reference\n"
    b"2024-01-05,Deposit from client,5000.00,\n"
    b"2024-01-05,DEPOSIT  FROM CLIENT,5000.00,\n"
    b"2024-01-06,Supermarket,-1200.50,\n"
    b"2024-01-08,Cheque 1045,-300.00,1045\n"
)

FEBRUARY_CSV = (
    b"Date,Description,Amount,Reference\n"
    b"2024-02-01,Rent,-4000.00,\n"
    b"2024-02-02,Cheque payment,-300.00,1045\n"
)


# =============================================================================
# DEDUP POLICY
# =============================================================================

class TestImportDedupPolicy:
    """Unit tests for the duplicate rule."""

    def setup_method(self):
        self.policy = ImportDedupPolicy()

    def test_normalize_description(self):
        assert self.policy.normalize_description("  Deposit   FROM client ") == "deposit from client"
        assert self.policy.normalize_description(None) == ""

    def test_normalize_reference(self):
        assert self.policy.normalize_reference("  ") is None
        assert self.policy.normalize_reference(" 1045 ") == "1045"

    def test_bucket_ignores_sign(self):
        key_out = self.policy.bucket_key(date(2024, 1, 5), Decimal("-50.00"))
        key_in = self.policy.bucket_key(date(2024, 1, 5), Decimal("50.00"))
        assert key_out == key_in

    def test_same_description(self):
        existing = [("deposit from client", None)]
        assert self.policy.is_duplicate("Deposit From Client", None, existing)

    def test_same_reference(self):
        existing = [("cheque 1045", "1045")]
        assert self.policy.is_duplicate("CHQ PAID", "1045", existing)

    def test_empty_reference_never_matches(self):
        existing = [("something else", None)]
        assert not self.policy.is_duplicate("Another thing", "", existing)

    def test_different_row(self):
        existing = [("deposit from client", "A1")]
        assert not self.policy.is_duplicate("Transfer", "B2", existing)


# =============================================================================
# BANK ACCOUNTS
# =============================================================================

class TestBankAccounts:
    """Tests for bank account operations."""

    @pytest.mark.asyncio
    async def test_create_uses_opening_balance(self, db_session, company_id, user_id, cash_account):
        service = BankImportService(db_session)
        account = await service.create_bank_account(
            company_id,
            BankAccountCreate(
                bank_name="Scotiabank Jamaica",
                account_name="Payroll",
                account_number="000111222",
                currency="jmd",
                opening_balance=Decimal("2500.00"),
                gl_account_id=cash_account.id,
            ),
            user_id,
        )

        assert account.current_balance == Decimal("2500.00")
        assert account.currency == "JMD"

        accounts = await service.list_bank_accounts(company_id)
        assert [a.id for a in accounts] == [account.id]

    @pytest.mark.asyncio
    async def test_other_company_cannot_read(self, db_session, bank_account):
        service = BankImportService(db_session)
        with pytest.raises(NotFoundException):
            await service.get_bank_account(uuid4(), bank_account.id)


# =============================================================================
# STATEMENT IMPORT
# =============================================================================

class TestImportStatement:
    """Tests for importing statement files."""

    @pytest.mark.asyncio
    async def test_import_skips_duplicate_rows(self, db_session, company_id, user_id, bank_account):
        service = BankImportService(db_session)
        result = await service.import_statement(
            company_id, bank_account.id, STATEMENT_CSV, "statement.csv", user_id,
        )

        assert result.detected_format == DetectedFormat.CSV
        assert result.total_parsed == 4
        assert result.imported == 3
        assert result.skipped == 1

        batch = await service.get_import_batch(company_id, result.batch_id)
        assert batch.status == ImportBatchStatus.COMPLETED
        assert batch.imported_count == 3
        assert batch.skipped_count == 1
        assert batch.transaction_count == 4
        assert batch.completed_at is not None

    @pytest.mark.asyncio
    async def test_balance_incremented(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")

        account = await service.get_bank_account(company_id, bank_account.id)
        # 10,000 + 5,000 - 1,200.50 - 300
        assert account.current_balance == Decimal("13499.50")

    @pytest.mark.asyncio
    async def test_reimport_adds_nothing(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")
        second = await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")

        assert second.imported == 0
        assert second.skipped == 4

        account = await service.get_bank_account(company_id, bank_account.id)
        assert account.current_balance == Decimal("13499.50")

        items, total = await service.list_transactions(company_id, bank_account.id)
        assert total == 3

    @pytest.mark.asyncio
    async def test_reference_match_on_other_day_is_not_duplicate(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")
        result = await service.import_statement(company_id, bank_account.id, FEBRUARY_CSV, "february.csv")

        assert result.imported == 2
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_imported_rows_are_signed(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        result = await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")

        items, _ = await service.list_transactions(company_id, bank_account.id)
        by_description = {t.description: t for t in items}

        deposit = by_description["Deposit from client"]
        assert deposit.amount == Decimal("5000.00")
        assert deposit.transaction_type == BankTransactionType.CREDIT
        assert deposit.import_batch_id == result.batch_id

        cheque = by_description["Cheque 1045"]
        assert cheque.amount == Decimal("-300.00")
        assert cheque.transaction_type == BankTransactionType.DEBIT
        assert cheque.reference == "1045"
        assert cheque.is_reconciled is False

    @pytest.mark.asyncio
    async def test_small_chunks(self, db_session, company_id, bank_account, monkeypatch):
        monkeypatch.setattr(settings, "import_chunk_size", 1)
        service = BankImportService(db_session)
        result = await service.import_statement(company_id, bank_account.id, STATEMENT_CSV, "statement.csv")

        # The duplicate sits in its own chunk and is still caught
        assert result.imported == 3
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_parse_error_writes_nothing(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        bad = b"Date,Description,Amount\n2024-01-05,Deposit,100.00\n2024-01-06,Broken,abc\n"

        with pytest.raises(StatementParseException) as exc_info:
            await service.import_statement(company_id, bank_account.id, bad, "statement.csv")
        assert exc_info.value.row_number == 3

        batches = await service.list_import_batches(company_id)
        assert batches == []
        _, total = await service.list_transactions(company_id, bank_account.id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_unrecognized_file(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        with pytest.raises(StatementParseException) as exc_info:
            await service.import_statement(company_id, bank_account.id, b"\x00\x01\x02", "scan.pdf")
        assert exc_info.value.detected_format == "unrecognized"

    @pytest.mark.asyncio
    async def test_unknown_bank_account(self, db_session, company_id):
        service = BankImportService(db_session)
        with pytest.raises(NotFoundException):
            await service.import_statement(company_id, uuid4(), STATEMENT_CSV, "statement.csv")


# =============================================================================
# FAILURES
# =============================================================================

class TestImportFailures:
    """Storage and audit failures during an import."""

    @pytest.mark.asyncio
    async def test_storage_failure_marks_batch_failed(self, db_session, company_id, bank_account, monkeypatch):
        monkeypatch.setattr(settings, "import_chunk_size", 1)
        monkeypatch.setattr(settings, "storage_retry_backoff_seconds", 0)
        original = BankImportService._import_chunk
        calls = []

        async def failing_after_first_chunk(self, bank_account_id, batch_id, rows, user_id):
            calls.append(rows[0].description)
            if len(calls) > 1:
                raise OperationalError("INSERT INTO bank_transactions", {}, Exception("disk I/O error"))
            return await original(self, bank_account_id, batch_id, rows, user_id)

        monkeypatch.setattr(BankImportService, "_import_chunk", failing_after_first_chunk)
        account_id = bank_account.id
        service = BankImportService(db_session)

        with pytest.raises(StorageException) as exc_info:
            await service.import_statement(company_id, account_id, STATEMENT_CSV, "statement.csv")
        assert exc_info.value.details["attempts"] == settings.storage_retry_attempts
        # The first chunk once, then every attempt at the second
        assert len(calls) == 1 + settings.storage_retry_attempts

        batches = await service.list_import_batches(company_id)
        assert len(batches) == 1
        batch = await service.get_import_batch(company_id, batches[0].id)
        assert batch.status == ImportBatchStatus.FAILED
        assert batch.imported_count == 1
        assert batch.skipped_count == 0
        assert "chunk 2" in batch.error_message
        assert batch.completed_at is not None

        account = await service.get_bank_account(company_id, account_id)
        assert account.current_balance == Decimal("15000.00")
        _, total = await service.list_transactions(company_id, account_id)
        assert total == 1

        # Importing the file again fills in the rest
        monkeypatch.setattr(BankImportService, "_import_chunk", original)
        retry = await service.import_statement(company_id, account_id, STATEMENT_CSV, "statement.csv")
        assert retry.imported == 2
        assert retry.skipped == 2
        account = await service.get_bank_account(company_id, account_id)
        assert account.current_balance == Decimal("13499.50")

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_import(self, db_session, company_id, bank_account):
        account_id = bank_account.id
        await db_session.execute(text("DROP TABLE audit_logs"))
        await db_session.commit()

        service = BankImportService(db_session)
        result = await service.import_statement(company_id, account_id, STATEMENT_CSV, "statement.csv")

        assert result.imported == 3
        batch = await service.get_import_batch(company_id, result.batch_id)
        assert batch.status == ImportBatchStatus.COMPLETED
        account = await service.get_bank_account(company_id, account_id)
        assert account.current_balance == Decimal("13499.50")


class TestBankModels:

    def test_account_has_no_transaction_collection(self):
        assert "transactions" not in inspect(BankAccount).relationships

    def test_transaction_account_is_never_lazy_loaded(self):
        assert inspect(BankTransaction).relationships["bank_account"].lazy == "raise"


# =============================================================================
# MANUAL TRANSACTIONS
# =============================================================================

class TestManualTransactions:
    """Tests for hand-entered bank transactions."""

    @pytest.mark.asyncio
    async def test_withdrawal(self, db_session, company_id, user_id, bank_account):
        service = BankImportService(db_session)
        transaction = await service.create_manual_transaction(
            company_id,
            bank_account.id,
            ManualTransactionCreate(
                transaction_date=date(2024, 1, 20),
                description="Bank charges",
                amount=Decimal("-150.00"),
            ),
            user_id,
        )

        assert transaction.transaction_type == BankTransactionType.DEBIT
        assert transaction.import_batch_id is None

        account = await service.get_bank_account(company_id, bank_account.id)
        assert account.current_balance == Decimal("9850.00")

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        with pytest.raises(InvalidAmountException):
            await service.create_manual_transaction(
                company_id,
                bank_account.id,
                ManualTransactionCreate(
                    transaction_date=date(2024, 1, 20),
                    description="Nothing",
                    amount=Decimal("0"),
                ),
            )

        account = await service.get_bank_account(company_id, bank_account.id)
        assert account.current_balance == Decimal("10000.00")

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, company_id, bank_account):
        service = BankImportService(db_session)
        for day, amount in ((5, "100.00"), (15, "200.00"), (25, "-50.00")):
            await service.create_manual_transaction(
                company_id,
                bank_account.id,
                ManualTransactionCreate(
                    transaction_date=date(2024, 1, day),
                    description=f"Entry {day}",
                    amount=Decimal(amount),
                ),
            )

        items, total = await service.list_transactions(
            company_id, bank_account.id, start_date=date(2024, 1, 10), end_date=date(2024, 1, 31),
        )
        assert total == 2
        assert [t.transaction_date.day for t in items] == [15, 25]
