"""
YaadBooks Ledger - Bank Reconciliation Models

A reconciliation covers one bank account over one statement period.
Matches and adjustments live on the reconciliation until it is
completed; only completion writes back to the bank transactions.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint,
    Uuid, Enum as SQLEnum, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.banking import MatchedDocumentType
from app.models.base import BaseModel, TenantMixin


# =============================================================================
# ENUMS
# =============================================================================

class ReconciliationStatus(str, Enum):
    """Reconciliation workflow status. COMPLETED and CANCELLED are terminal."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MatchMethod(str, Enum):
    """How a bank transaction was paired."""
    AUTO = "auto"
    MANUAL = "manual"


class AdjustmentSide(str, Enum):
    """Which side of the reconciliation an adjustment corrects."""
    BOOK = "book"
    BANK = "bank"


# =============================================================================
# RECONCILIATION
# =============================================================================

class BankReconciliation(BaseModel, TenantMixin):
    """Reconciliation of a bank account against its statement for a period."""

    __tablename__ = "bank_reconciliations"

    bank_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    statement_balance: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    book_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=False,
        comment="Opening balance plus matched activity",
    )
    closing_balance: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=18, scale=2), nullable=True)
    difference: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    status: Mapped[ReconciliationStatus] = mapped_column(
        SQLEnum(ReconciliationStatus),
        default=ReconciliationStatus.IN_PROGRESS,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    matches: Mapped[List["ReconciliationMatch"]] = relationship(
        "ReconciliationMatch",
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    adjustments: Mapped[List["ReconciliationAdjustment"]] = relationship(
        "ReconciliationAdjustment",
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        # At most one open reconciliation per bank account
        Index(
            "uq_reconciliation_one_in_progress",
            "bank_account_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status == ReconciliationStatus.IN_PROGRESS

    @property
    def reconciled_transaction_ids(self) -> List[uuid.UUID]:
        return [match.bank_transaction_id for match in self.matches]


class ReconciliationMatch(BaseModel):
    """Pairing of a bank transaction with a book document inside a reconciliation."""

    __tablename__ = "reconciliation_matches"

    reconciliation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_reconciliations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bank_transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_type: Mapped[MatchedDocumentType] = mapped_column(
        SQLEnum(MatchedDocumentType),
        default=MatchedDocumentType.NONE,
        nullable=False,
    )
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=False,
        comment="Signed bank amount at the time of matching",
    )
    match_method: Mapped[MatchMethod] = mapped_column(
        SQLEnum(MatchMethod),
        default=MatchMethod.AUTO,
        nullable=False,
    )
    matched_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    reconciliation: Mapped["BankReconciliation"] = relationship(
        "BankReconciliation", back_populates="matches",
    )

    __table_args__ = (
        UniqueConstraint("reconciliation_id", "bank_transaction_id", name="uq_recon_match_transaction"),
    )


class ReconciliationAdjustment(BaseModel):
    """Signed correction explaining part of the remaining variance."""

    __tablename__ = "reconciliation_adjustments"

    reconciliation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_reconciliations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    side: Mapped[AdjustmentSide] = mapped_column(
        SQLEnum(AdjustmentSide),
        default=AdjustmentSide.BOOK,
        nullable=False,
    )
    journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    reconciliation: Mapped["BankReconciliation"] = relationship(
        "BankReconciliation", back_populates="adjustments",
    )
