"""Ledger core schema: accounts, journal entries, banking, reconciliation, FX, sync queue

Revision ID: 20260201_0900_ledger_core_schema
Revises:
Create Date: 2026-02-01 09:00:00.000000

Tables:
- accounts, journal_entries, journal_entry_lines, entry_number_sequences
- bank_accounts, import_batches, bank_transactions
- bank_reconciliations, reconciliation_matches, reconciliation_adjustments
- payments, expenses (book documents read by reconciliation)
- exchange_rates, audit_logs, sync_queue_items

Enum columns store member names (ASSET, POSTED, IN_PROGRESS, ...).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20260201_0900_ledger_core_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'accounttype': ('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE'),
    'journalentrystatus': ('POSTED', 'VOID'),
    'banktransactiontype': ('DEBIT', 'CREDIT'),
    'importbatchstatus': ('PENDING', 'COMPLETED', 'FAILED'),
    'matcheddocumenttype': ('JOURNAL_LINE', 'PAYMENT', 'EXPENSE', 'NONE'),
    'reconciliationstatus': ('IN_PROGRESS', 'COMPLETED', 'CANCELLED'),
    'matchmethod': ('AUTO', 'MANUAL'),
    'adjustmentside': ('BOOK', 'BANK'),
    'paymentdirection': ('RECEIVED', 'SENT'),
    'auditaction': ('CREATE', 'UPDATE', 'DELETE', 'VOID', 'IMPORT', 'COMPLETE', 'CANCEL'),
    'syncqueuestatus': ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'DEAD'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=18, scale=2), nullable=nullable, **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # =====================================================
    # GENERAL LEDGER
    # =====================================================
    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('account_type', _enum('accounttype'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'code', name='uq_account_company_code'),
    )

    op.create_table(
        'journal_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('entry_number', sa.String(50), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False, index=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('source_module', sa.String(50), nullable=True),
        _money('total_debit', server_default='0'),
        _money('total_credit', server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='JMD'),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False, server_default='1'),
        sa.Column('status', _enum('journalentrystatus'), nullable=False, server_default='POSTED'),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('void_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'entry_number', name='uq_journal_entry_number'),
        sa.CheckConstraint(
            'total_debit - total_credit <= 0.01 AND total_credit - total_debit <= 0.01',
            name='balanced_entry',
        ),
    )
    op.create_index('ix_je_company_date', 'journal_entries', ['company_id', 'entry_date'])
    op.create_index('ix_je_company_status', 'journal_entries', ['company_id', 'status'])

    op.create_table(
        'journal_entry_lines',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('journal_entry_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('journal_entries.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('account_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        _money('debit_amount', server_default='0'),
        _money('credit_amount', server_default='0'),
        _money('base_debit_amount', server_default='0'),
        _money('base_credit_amount', server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('debit_amount >= 0 AND credit_amount >= 0', name='non_negative_amounts'),
        sa.CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (debit_amount = 0 AND credit_amount > 0)',
            name='single_sided_line',
        ),
    )

    op.create_table(
        'entry_number_sequences',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('prefix', sa.String(10), nullable=False),
        sa.Column('next_value', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'prefix', name='uq_entry_sequence_company_prefix'),
    )

    # =====================================================
    # BANKING
    # =====================================================
    op.create_table(
        'bank_accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('bank_name', sa.String(100), nullable=False),
        sa.Column('account_name', sa.String(200), nullable=False),
        sa.Column('account_number', sa.String(50), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='JMD'),
        _money('current_balance', server_default='0'),
        sa.Column('gl_account_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('last_reconciled_date', sa.Date(), nullable=True),
        _money('last_reconciled_balance', nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'import_batches',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('bank_account_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_type', sa.String(10), nullable=False),
        sa.Column('detected_bank', sa.String(100), nullable=True),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('imported_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', _enum('importbatchstatus'), nullable=False, server_default='PENDING'),
        sa.Column('imported_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'bank_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('bank_account_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('import_batch_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('import_batches.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('post_date', sa.Date(), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        _money('amount'),
        sa.Column('transaction_type', _enum('banktransactiontype'), nullable=False),
        _money('balance', nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('is_reconciled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('reconciled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reconciled_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('matched_document_type', _enum('matcheddocumenttype'), nullable=True),
        sa.Column('matched_document_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('journal_entry_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('journal_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_bank_txn_account_date', 'bank_transactions', ['bank_account_id', 'transaction_date'])
    op.create_index('ix_bank_txn_account_reconciled', 'bank_transactions', ['bank_account_id', 'is_reconciled'])

    # =====================================================
    # BANK RECONCILIATION
    # =====================================================
    op.create_table(
        'bank_reconciliations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('bank_account_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        _money('opening_balance'),
        _money('statement_balance'),
        _money('book_balance'),
        _money('closing_balance', nullable=True),
        _money('difference', server_default='0'),
        sa.Column('status', _enum('reconciliationstatus'), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    # At most one open reconciliation per bank account
    op.create_index(
        'uq_reconciliation_one_in_progress',
        'bank_reconciliations',
        ['bank_account_id'],
        unique=True,
        postgresql_where=sa.text("status = 'IN_PROGRESS'"),
    )

    op.create_table(
        'reconciliation_matches',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('reconciliation_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_reconciliations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('bank_transaction_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_transactions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('document_type', _enum('matcheddocumenttype'), nullable=False, server_default='NONE'),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('journal_entry_id', postgresql.UUID(as_uuid=True), nullable=True),
        _money('amount'),
        sa.Column('match_method', _enum('matchmethod'), nullable=False, server_default='AUTO'),
        sa.Column('matched_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('reconciliation_id', 'bank_transaction_id', name='uq_recon_match_transaction'),
    )

    op.create_table(
        'reconciliation_adjustments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('reconciliation_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('bank_reconciliations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('description', sa.String(500), nullable=False),
        _money('amount'),
        sa.Column('side', _enum('adjustmentside'), nullable=False, server_default='BOOK'),
        sa.Column('journal_entry_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('journal_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )

    # =====================================================
    # BOOK DOCUMENTS
    # =====================================================
    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('payment_date', sa.Date(), nullable=False, index=True),
        _money('amount'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='JMD'),
        sa.Column('direction', _enum('paymentdirection'), nullable=False, server_default='RECEIVED'),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('invoice_number', sa.String(50), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'expenses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('expense_date', sa.Date(), nullable=False, index=True),
        _money('amount'),
        _money('tax_amount', server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='JMD'),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # =====================================================
    # EXCHANGE RATES
    # =====================================================
    op.create_table(
        'exchange_rates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('from_currency', sa.String(3), nullable=False),
        sa.Column('to_currency', sa.String(3), nullable=False),
        sa.Column('rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('inverse_rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('rate_date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column('is_manual_override', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.UniqueConstraint('from_currency', 'to_currency', 'rate_date', name='uq_exchange_rate_pair_date'),
    )
    op.create_index('ix_exchange_rate_lookup', 'exchange_rates', ['from_currency', 'to_currency', 'rate_date'])

    # =====================================================
    # AUDIT LOG
    # =====================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('action', _enum('auditaction'), nullable=False, index=True),
        sa.Column('target_entity_type', sa.String(100), nullable=False, index=True),
        sa.Column('target_entity_id', sa.String(100), nullable=False, index=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('changed_fields', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    # =====================================================
    # OFFLINE SYNC QUEUE
    # =====================================================
    op.create_table(
        'sync_queue_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('operation', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('client_reference', sa.String(100), nullable=True),
        sa.Column('status', _enum('syncqueuestatus'), nullable=False, server_default='PENDING'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_sync_queue_status_next', 'sync_queue_items', ['status', 'next_attempt_at'])
    op.create_index('ix_sync_queue_company_client_ref', 'sync_queue_items', ['company_id', 'client_reference'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('sync_queue_items')
    op.drop_table('audit_logs')
    op.drop_table('exchange_rates')
    op.drop_table('expenses')
    op.drop_table('payments')
    op.drop_table('reconciliation_adjustments')
    op.drop_table('reconciliation_matches')
    op.drop_index('uq_reconciliation_one_in_progress', table_name='bank_reconciliations')
    op.drop_table('bank_reconciliations')
    op.drop_table('bank_transactions')
    op.drop_table('import_batches')
    op.drop_table('bank_accounts')
    op.drop_table('entry_number_sequences')
    op.drop_table('journal_entry_lines')
    op.drop_table('journal_entries')
    op.drop_table('accounts')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
