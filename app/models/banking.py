"""
YaadBooks Ledger - Banking Models

Bank accounts, their statement transactions and the import batches
that brought those transactions in.

Sign convention: BankTransaction.amount is signed from the account
holder's point of view. Deposits are positive, withdrawals negative.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String,
    Text, Uuid, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, TenantMixin


# =============================================================================
# ENUMS
# =============================================================================

class BankTransactionType(str, Enum):
    """Direction tag carried alongside the signed amount."""
    DEBIT = "debit"
    CREDIT = "credit"


class ImportBatchStatus(str, Enum):
    """Lifecycle of a statement import."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchedDocumentType(str, Enum):
    """Book-side document a bank transaction was reconciled against."""
    JOURNAL_LINE = "journal_line"
    PAYMENT = "payment"
    EXPENSE = "expense"
    NONE = "none"


# =============================================================================
# BANK ACCOUNT
# =============================================================================

class BankAccount(BaseModel, TenantMixin):
    """Bank account held by a company."""

    __tablename__ = "bank_accounts"

    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="JMD", nullable=False)

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    gl_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        comment="Ledger account mirrored by this bank account",
    )

    last_reconciled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_reconciled_balance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<BankAccount({self.bank_name} - {self.account_number})>"


# =============================================================================
# IMPORT BATCH
# =============================================================================

class ImportBatch(BaseModel, TenantMixin):
    """One uploaded statement file and the outcome of importing it."""

    __tablename__ = "import_batches"

    bank_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(10), nullable=False)
    detected_bank: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    imported_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[ImportBatchStatus] = mapped_column(
        SQLEnum(ImportBatchStatus),
        default=ImportBatchStatus.PENDING,
        nullable=False,
    )
    imported_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# =============================================================================
# BANK TRANSACTION
# =============================================================================

class BankTransaction(BaseModel):
    """
    A single statement line.

    Becomes terminal once a completed reconciliation includes it:
    is_reconciled and the matched document fields are then never reset.
    """

    __tablename__ = "bank_transactions"

    bank_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    import_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("import_batches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    post_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=False,
        comment="Signed: deposits positive, withdrawals negative",
    )
    transaction_type: Mapped[BankTransactionType] = mapped_column(
        SQLEnum(BankTransactionType),
        nullable=False,
    )
    balance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=True,
        comment="Running balance as reported by the bank",
    )
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Reconciliation
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    matched_document_type: Mapped[Optional[MatchedDocumentType]] = mapped_column(
        SQLEnum(MatchedDocumentType),
        nullable=True,
    )
    matched_document_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Services query by bank_account_id; lazy loading is an error under asyncio
    bank_account: Mapped["BankAccount"] = relationship("BankAccount", lazy="raise")

    __table_args__ = (
        Index("ix_bank_txn_account_date", "bank_account_id", "transaction_date"),
        Index("ix_bank_txn_account_reconciled", "bank_account_id", "is_reconciled"),
    )

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.amount)

    def __repr__(self) -> str:
        return f"<BankTransaction({self.transaction_date} {self.amount} {self.description[:30]})>"
