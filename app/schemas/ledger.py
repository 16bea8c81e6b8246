"""
YaadBooks Ledger - Ledger Schemas

Pydantic schemas for accounts and journal entries.

Balance and line-shape rules are enforced by the ledger service so the
caller always gets back the specific rule that failed.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.accounting import AccountType, JournalEntryStatus


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountCreate(BaseModel):
    """Schema for creating a ledger account."""
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType
    description: Optional[str] = None


class AccountResponse(BaseModel):
    """Schema for account response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    code: str
    name: str
    account_type: AccountType
    description: Optional[str] = None
    is_active: bool


class AccountTotalsResponse(BaseModel):
    """Base-currency debit/credit totals for an account, voided entries excluded."""
    account_id: UUID
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

class JournalEntryLineCreate(BaseModel):
    """Schema for one proposed journal line."""
    account_id: UUID
    debit_amount: Decimal = Decimal("0.00")
    credit_amount: Decimal = Decimal("0.00")
    description: Optional[str] = Field(None, max_length=500)


class JournalEntryCreate(BaseModel):
    """Schema for posting a journal entry."""
    entry_date: date
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = Field(None, max_length=100)
    currency: str = Field("JMD", min_length=3, max_length=3)
    source_module: Optional[str] = None
    lines: List[JournalEntryLineCreate]


class JournalEntryVoid(BaseModel):
    """Schema for voiding a journal entry."""
    reason: Optional[str] = None


class JournalEntryLineResponse(BaseModel):
    """Schema for journal entry line response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    line_number: int
    description: Optional[str] = None
    debit_amount: Decimal
    credit_amount: Decimal
    base_debit_amount: Decimal
    base_credit_amount: Decimal


class JournalEntryResponse(BaseModel):
    """Schema for journal entry response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    entry_number: str
    entry_date: date
    description: str
    reference: Optional[str] = None
    currency: str
    exchange_rate: Decimal
    source_module: Optional[str] = None
    total_debit: Decimal
    total_credit: Decimal
    status: JournalEntryStatus
    created_by_id: Optional[UUID] = None
    voided_at: Optional[datetime] = None
    voided_by_id: Optional[UUID] = None
    void_reason: Optional[str] = None
    created_at: datetime
    lines: List[JournalEntryLineResponse] = []


class JournalEntryListResponse(BaseModel):
    """Schema for paginated journal entries list."""
    items: List[JournalEntryResponse]
    total: int
    limit: int
    offset: int
