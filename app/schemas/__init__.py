"""
YaadBooks Ledger - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.ledger import (
    AccountCreate,
    AccountResponse,
    AccountTotalsResponse,
    JournalEntryLineCreate,
    JournalEntryCreate,
    JournalEntryVoid,
    JournalEntryLineResponse,
    JournalEntryResponse,
    JournalEntryListResponse,
)
from app.schemas.banking import (
    BankAccountCreate,
    BankAccountResponse,
    ManualTransactionCreate,
    BankTransactionResponse,
    BankTransactionListResponse,
    ImportResultResponse,
    ImportBatchResponse,
)
from app.schemas.reconciliation import (
    ReconciliationStart,
    AdjustmentCreate,
    ManualMatchRequest,
    UnmatchRequest,
    ReconciliationComplete,
    ReconciliationMatchResponse,
    AdjustmentResponse,
    ReconciliationResponse,
    BookDocumentResponse,
    MatchResultResponse,
    ReconciliationSummaryResponse,
)
from app.schemas.currency import ExchangeRateCreate, ExchangeRateResponse, ConversionResponse
from app.schemas.sync import SyncQueueEnqueue, SyncQueueItemResponse

__all__ = [
    # Ledger
    "AccountCreate",
    "AccountResponse",
    "AccountTotalsResponse",
    "JournalEntryLineCreate",
    "JournalEntryCreate",
    "JournalEntryVoid",
    "JournalEntryLineResponse",
    "JournalEntryResponse",
    "JournalEntryListResponse",
    # Banking
    "BankAccountCreate",
    "BankAccountResponse",
    "ManualTransactionCreate",
    "BankTransactionResponse",
    "BankTransactionListResponse",
    "ImportResultResponse",
    "ImportBatchResponse",
    # Reconciliation
    "ReconciliationStart",
    "AdjustmentCreate",
    "ManualMatchRequest",
    "UnmatchRequest",
    "ReconciliationComplete",
    "ReconciliationMatchResponse",
    "AdjustmentResponse",
    "ReconciliationResponse",
    "BookDocumentResponse",
    "MatchResultResponse",
    "ReconciliationSummaryResponse",
    # Exchange rates
    "ExchangeRateCreate",
    "ExchangeRateResponse",
    "ConversionResponse",
    # Sync
    "SyncQueueEnqueue",
    "SyncQueueItemResponse",
]
