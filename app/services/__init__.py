"""
YaadBooks Ledger - Services Package

Business logic services.
"""

from app.services.statement_parser import (
    DetectedFormat,
    ParsedStatement,
    ParsedTransaction,
    detect_format,
    parse_statement,
)
from app.services.audit_service import AuditService
from app.services.currency_service import CurrencyService, get_currency_service
from app.services.ledger_service import LedgerService, get_ledger_service, validate_lines
from app.services.bank_import_service import BankImportService, ImportDedupPolicy, get_bank_import_service
from app.services.reconciliation_service import ReconciliationService, get_reconciliation_service
from app.services.sync_queue_service import SyncQueueService, get_sync_queue_service

__all__ = [
    # Statement parsing
    "DetectedFormat",
    "ParsedStatement",
    "ParsedTransaction",
    "detect_format",
    "parse_statement",
    # Services
    "AuditService",
    "CurrencyService",
    "get_currency_service",
    "LedgerService",
    "get_ledger_service",
    "validate_lines",
    "BankImportService",
    "ImportDedupPolicy",
    "get_bank_import_service",
    "ReconciliationService",
    "get_reconciliation_service",
    "SyncQueueService",
    "get_sync_queue_service",
]
