"""
YaadBooks Ledger - Routers Package

FastAPI route handlers.

Routers:
- banking: Bank accounts, statement imports, bank transactions
- journal_entries: Chart of accounts and journal entries
- reconciliation: Bank reconciliation workflow
- exchange_rates: Exchange rates and conversion
- sync: Offline sync queue
"""

from app.routers import (
    banking,
    journal_entries,
    reconciliation,
    exchange_rates,
    sync,
)

__all__ = [
    "banking",
    "journal_entries",
    "reconciliation",
    "exchange_rates",
    "sync",
]
