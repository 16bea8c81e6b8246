"""
YaadBooks Ledger - Bank Reconciliation Schemas

Request/response schemas for reconciliation periods, matches and
adjustments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, model_validator

from app.models.banking import MatchedDocumentType
from app.models.reconciliation import AdjustmentSide, MatchMethod, ReconciliationStatus
from app.schemas.banking import BankTransactionResponse


# =============================================================================
# REQUESTS
# =============================================================================

class ReconciliationStart(BaseModel):
    """Start reconciling a statement period."""
    bank_account_id: UUID
    period_start: date
    period_end: date
    statement_balance: Decimal
    opening_balance: Optional[Decimal] = Field(
        None,
        description="Defaults to the last reconciled balance, else the account's current balance",
    )
    notes: Optional[str] = None


class AdjustmentCreate(BaseModel):
    """A recorded explanation for part of the difference."""
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal
    side: AdjustmentSide = AdjustmentSide.BOOK
    journal_entry_id: Optional[UUID] = None


class ManualMatchRequest(BaseModel):
    """Pair a bank transaction by hand, optionally with a specific book document."""
    bank_transaction_id: UUID
    document_type: Optional[MatchedDocumentType] = None
    document_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_document(self):
        if self.document_id is not None and self.document_type in (None, MatchedDocumentType.NONE):
            raise ValueError("document_type is required when document_id is given")
        return self


class UnmatchRequest(BaseModel):
    bank_transaction_id: UUID


class ReconciliationComplete(BaseModel):
    """Finalize a reconciliation, recording any last adjustments."""
    adjustments: List[AdjustmentCreate] = []


# =============================================================================
# RESPONSES
# =============================================================================

class ReconciliationMatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bank_transaction_id: UUID
    document_type: MatchedDocumentType
    document_id: Optional[UUID] = None
    journal_entry_id: Optional[UUID] = None
    amount: Decimal
    match_method: MatchMethod


class AdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    amount: Decimal
    side: AdjustmentSide
    journal_entry_id: Optional[UUID] = None


class ReconciliationResponse(BaseModel):
    """Schema for reconciliation response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    bank_account_id: UUID
    period_start: date
    period_end: date
    opening_balance: Decimal
    statement_balance: Decimal
    book_balance: Decimal
    closing_balance: Optional[Decimal] = None
    difference: Decimal
    status: ReconciliationStatus
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by_id: Optional[UUID] = None
    cancelled_at: Optional[datetime] = None
    reconciled_transaction_ids: List[UUID] = []
    matches: List[ReconciliationMatchResponse] = []
    adjustments: List[AdjustmentResponse] = []


class BookDocumentResponse(BaseModel):
    """A book-side candidate, signed from the bank's point of view."""
    model_config = ConfigDict(from_attributes=True)

    document_type: MatchedDocumentType
    document_id: UUID
    journal_entry_id: Optional[UUID] = None
    document_date: date
    amount: Decimal = Field(..., description="In the bank account's currency")
    currency: str = Field(..., description="Currency the document was recorded in")
    source_amount: Decimal = Field(..., description="Signed amount in the document's currency")
    description: Optional[str] = None
    reference: Optional[str] = None


class MatchResultResponse(BaseModel):
    """Outcome of an automatic matching run."""
    matched: List[ReconciliationMatchResponse]
    unmatched_bank: List[BankTransactionResponse]
    unmatched_book: List[BookDocumentResponse]
    ambiguous: Dict[UUID, List[BookDocumentResponse]] = Field(
        default_factory=dict,
        description="Bank transaction id to the equally ranked documents it could match",
    )
    book_balance: Decimal
    difference: Decimal


class ReconciliationSummaryResponse(BaseModel):
    reconciliation_id: UUID
    status: ReconciliationStatus
    opening_balance: Decimal
    statement_balance: Decimal
    book_balance: Decimal
    matched_count: int
    matched_total: Decimal
    adjustments_total: Decimal
    unmatched_bank_count: int
    difference: Decimal
    is_balanced: bool
