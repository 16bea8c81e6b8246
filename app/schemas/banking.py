"""
YaadBooks Ledger - Banking Schemas

Pydantic schemas for bank accounts, bank transactions and statement imports.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.banking import BankTransactionType, ImportBatchStatus, MatchedDocumentType


# =============================================================================
# BANK ACCOUNTS
# =============================================================================

class BankAccountCreate(BaseModel):
    """Schema for creating a bank account."""
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_name: str = Field(..., min_length=1, max_length=200)
    account_number: str = Field(..., min_length=1, max_length=50)
    currency: str = Field("JMD", min_length=3, max_length=3)
    opening_balance: Decimal = Decimal("0.00")
    gl_account_id: Optional[UUID] = Field(None, description="Ledger account mirrored by this bank account")


class BankAccountResponse(BaseModel):
    """Schema for bank account response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    bank_name: str
    account_name: str
    account_number: str
    currency: str
    current_balance: Decimal
    gl_account_id: Optional[UUID] = None
    last_reconciled_date: Optional[date] = None
    last_reconciled_balance: Optional[Decimal] = None
    is_active: bool


# =============================================================================
# BANK TRANSACTIONS
# =============================================================================

class ManualTransactionCreate(BaseModel):
    """Hand-entered bank transaction. Withdrawals are negative."""
    transaction_date: date
    post_date: Optional[date] = None
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = Field(None, max_length=100)
    amount: Decimal
    category: Optional[str] = Field(None, max_length=100)


class BankTransactionResponse(BaseModel):
    """Schema for bank transaction response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bank_account_id: UUID
    import_batch_id: Optional[UUID] = None
    transaction_date: date
    post_date: Optional[date] = None
    description: str
    reference: Optional[str] = None
    amount: Decimal
    transaction_type: BankTransactionType
    balance: Optional[Decimal] = None
    category: Optional[str] = None
    is_reconciled: bool
    reconciled_at: Optional[datetime] = None
    matched_document_type: Optional[MatchedDocumentType] = None
    matched_document_id: Optional[UUID] = None
    journal_entry_id: Optional[UUID] = None


class BankTransactionListResponse(BaseModel):
    """Schema for paginated bank transactions."""
    items: List[BankTransactionResponse]
    total: int
    limit: int
    offset: int


# =============================================================================
# IMPORTS
# =============================================================================

class ImportResultResponse(BaseModel):
    """Outcome of a statement import."""
    model_config = ConfigDict(from_attributes=True)

    batch_id: UUID
    imported: int
    skipped: int
    total_parsed: int
    detected_format: str = Field(..., description="csv or ofx")
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    layout: Optional[str] = None


class ImportBatchResponse(BaseModel):
    """Schema for import batch response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bank_account_id: UUID
    file_name: str
    file_type: str
    detected_bank: Optional[str] = None
    transaction_count: int
    imported_count: int
    skipped_count: int
    status: ImportBatchStatus
    imported_by_id: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime
