"""
YaadBooks Ledger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin, TenantMixin
from app.models.accounting import (
    Account,
    AccountType,
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    EntryNumberSequence,
)
from app.models.banking import (
    BankAccount,
    BankTransaction,
    BankTransactionType,
    ImportBatch,
    ImportBatchStatus,
    MatchedDocumentType,
)
from app.models.reconciliation import (
    BankReconciliation,
    ReconciliationMatch,
    ReconciliationAdjustment,
    ReconciliationStatus,
    MatchMethod,
    AdjustmentSide,
)
from app.models.currency import ExchangeRate
from app.models.documents import Payment, PaymentDirection, Expense
from app.models.audit import AuditLog, AuditAction
from app.models.sync_queue import SyncQueueItem, SyncQueueStatus

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    "TenantMixin",
    # Ledger
    "Account",
    "AccountType",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "EntryNumberSequence",
    # Banking
    "BankAccount",
    "BankTransaction",
    "BankTransactionType",
    "ImportBatch",
    "ImportBatchStatus",
    "MatchedDocumentType",
    # Reconciliation
    "BankReconciliation",
    "ReconciliationMatch",
    "ReconciliationAdjustment",
    "ReconciliationStatus",
    "MatchMethod",
    "AdjustmentSide",
    # Currency
    "ExchangeRate",
    # Book documents
    "Payment",
    "PaymentDirection",
    "Expense",
    # Audit
    "AuditLog",
    "AuditAction",
    # Offline sync
    "SyncQueueItem",
    "SyncQueueStatus",
]
