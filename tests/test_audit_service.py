"""
YaadBooks Ledger - Audit Service Tests
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from app.models.accounting import JournalEntryStatus
from app.models.audit import AuditAction
from app.schemas.ledger import JournalEntryCreate, JournalEntryLineCreate
from app.services.audit_service import AuditService
from app.services.ledger_service import LedgerService


class TestAuditService:
    """Tests for audit trail writes and reads."""

    @pytest.mark.asyncio
    async def test_log_action_serializes_values(self, db_session, company_id, user_id):
        service = AuditService(db_session)
        entity_id = uuid4()

        log = await service.log_action(
            company_id=company_id,
            entity_type="bank_reconciliation",
            entity_id=entity_id,
            action=AuditAction.CREATE,
            user_id=user_id,
            new_values={
                "statement_balance": Decimal("14500.00"),
                "period_end": date(2024, 1, 31),
                "bank_account_id": entity_id,
            },
        )

        assert log.target_entity_id == str(entity_id)
        assert log.new_values == {
            "statement_balance": "14500.00",
            "period_end": "2024-01-31",
            "bank_account_id": str(entity_id),
        }
        assert log.changed_fields is None

    @pytest.mark.asyncio
    async def test_update_records_changed_fields(self, db_session, company_id):
        service = AuditService(db_session)
        log = await service.log_action(
            company_id=company_id,
            entity_type="bank_account",
            entity_id=uuid4(),
            action=AuditAction.UPDATE,
            old_values={"account_name": "Operating", "currency": "JMD"},
            new_values={"account_name": "Main Operating", "currency": "JMD"},
        )
        assert log.changed_fields == ["account_name"]

    @pytest.mark.asyncio
    async def test_get_audit_logs_filters(self, db_session, company_id):
        service = AuditService(db_session)
        entry_id = uuid4()
        await service.log_action(company_id, "journal_entry", entry_id, AuditAction.CREATE)
        await service.log_action(company_id, "journal_entry", entry_id, AuditAction.VOID)
        await service.log_action(company_id, "import_batch", uuid4(), AuditAction.IMPORT)
        await service.log_action(uuid4(), "journal_entry", entry_id, AuditAction.CREATE)

        logs = await service.get_audit_logs(company_id, entity_type="journal_entry", entity_id=str(entry_id))
        assert {log.action for log in logs} == {AuditAction.CREATE, AuditAction.VOID}

        voids = await service.get_audit_logs(company_id, action=AuditAction.VOID)
        assert len(voids) == 1

        everything = await service.get_audit_logs(company_id)
        assert len(everything) == 3


class TestAuditWriteFailure:
    """A failed audit write never undoes or detaches the audited change."""

    async def _drop_audit_table(self, db_session):
        await db_session.execute(text("DROP TABLE audit_logs"))
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_log_action_returns_none(self, db_session, company_id):
        await self._drop_audit_table(db_session)

        log = await AuditService(db_session).log_action(
            company_id, "journal_entry", uuid4(), AuditAction.CREATE,
        )
        assert log is None

    @pytest.mark.asyncio
    async def test_posted_entry_stays_loaded(self, db_session, company_id, cash_account, revenue_account):
        await self._drop_audit_table(db_session)

        entry = await LedgerService(db_session).post_entry(
            company_id,
            JournalEntryCreate(
                entry_date=date(2024, 1, 20),
                description="Cash sale",
                lines=[
                    JournalEntryLineCreate(account_id=cash_account.id, debit_amount=Decimal("2000.00")),
                    JournalEntryLineCreate(account_id=revenue_account.id, credit_amount=Decimal("2000.00")),
                ],
            ),
        )

        assert entry.entry_number.startswith("JE-")
        assert entry.status == JournalEntryStatus.POSTED
        assert sorted(line.line_number for line in entry.lines) == [1, 2]

        reloaded = await LedgerService(db_session).get_entry(company_id, entry.id)
        assert reloaded.total_debit == Decimal("2000.00")
