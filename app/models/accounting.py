"""
YaadBooks Ledger - General Ledger Models

Double-entry accounting models:
- Account: chart of accounts row referenced by journal lines
- JournalEntry: header of a balanced entry (POSTED or VOID)
- JournalEntryLine: single debit or credit against an account
- EntryNumberSequence: per-company counter backing entry numbers

Posted entries are never edited or deleted. The only permitted
transition is POSTED -> VOID, which keeps the lines in place.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint, Uuid, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, BaseModel, TenantMixin


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Primary account classification."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class JournalEntryStatus(str, Enum):
    """Journal entry lifecycle. POSTED is the only live state."""
    POSTED = "posted"
    VOID = "void"


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class Account(BaseModel, TenantMixin, AuditMixin):
    """Ledger account. Running balances are derived from posted lines."""

    __tablename__ = "accounts"

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(SQLEnum(AccountType), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
    )

    def __repr__(self) -> str:
        return f"<Account({self.code}: {self.name})>"


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

class JournalEntry(BaseModel, TenantMixin):
    """
    Journal Entry - The core of double-entry accounting.

    Every financial transaction creates a journal entry with
    balanced debits and credits.
    """

    __tablename__ = "journal_entries"

    entry_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Generated per company (e.g., JE-00001Z)",
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    source_module: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True,
        comment="Module that created this entry (banking, reconciliation, sync, manual)",
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(3), default="JMD", nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=6),
        default=Decimal("1"),
        nullable=False,
        comment="Rate into the base currency on the entry date",
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        SQLEnum(JournalEntryStatus),
        default=JournalEntryStatus.POSTED,
        nullable=False,
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Void tracking
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    void_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lines: Mapped[List["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        order_by="JournalEntryLine.line_number",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("company_id", "entry_number", name="uq_journal_entry_number"),
        Index("ix_je_company_date", "company_id", "entry_date"),
        Index("ix_je_company_status", "company_id", "status"),
        CheckConstraint(
            "total_debit - total_credit <= 0.01 AND total_credit - total_debit <= 0.01",
            name="balanced_entry",
        ),
    )

    @property
    def is_void(self) -> bool:
        return self.status == JournalEntryStatus.VOID

    def __repr__(self) -> str:
        return f"<JournalEntry({self.entry_number}: {self.description[:50]})>"


class JournalEntryLine(BaseModel):
    """
    Individual line item in a journal entry.
    Each line is either a debit or credit to a specific account.
    """

    __tablename__ = "journal_entry_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Amount (one or the other, not both)
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Same amounts in the base currency, each rounded half up
    base_debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    base_credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    journal_entry: Mapped["JournalEntry"] = relationship("JournalEntry", back_populates="lines")

    __table_args__ = (
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0",
            name="non_negative_amounts",
        ),
        CheckConstraint(
            "(debit_amount > 0 AND credit_amount = 0) OR (debit_amount = 0 AND credit_amount > 0)",
            name="single_sided_line",
        ),
    )

    @property
    def signed_amount(self) -> Decimal:
        """Debit positive, credit negative. Matches a bank account's sign convention."""
        return (self.debit_amount or Decimal("0")) - (self.credit_amount or Decimal("0"))


class EntryNumberSequence(BaseModel, TenantMixin):
    """Monotonic per-company counter used to issue journal entry numbers."""

    __tablename__ = "entry_number_sequences"

    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    next_value: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "prefix", name="uq_entry_sequence_company_prefix"),
    )
