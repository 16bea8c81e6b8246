"""
YaadBooks Ledger - Journal Entries API Router

Chart of accounts and balanced journal entries.
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import IdentityContext, get_identity
from app.schemas.ledger import (
    AccountCreate,
    AccountResponse,
    AccountTotalsResponse,
    JournalEntryCreate,
    JournalEntryListResponse,
    JournalEntryResponse,
    JournalEntryVoid,
)
from app.services.ledger_service import get_ledger_service

router = APIRouter(tags=["Ledger"])


# =============================================================================
# ACCOUNT ENDPOINTS
# =============================================================================

@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_ledger_service(db)
    return await service.create_account(identity.company_id, data, identity.user_id)


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_ledger_service(db)
    return await service.list_accounts(identity.company_id, include_inactive=include_inactive)


@router.get("/accounts/{account_id}/totals", response_model=AccountTotalsResponse)
async def get_account_totals(
    account_id: uuid.UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Debit and credit totals from posted entries; voided entries are excluded."""
    service = get_ledger_service(db)
    return await service.get_account_totals(identity.company_id, account_id, start_date, end_date)


# =============================================================================
# JOURNAL ENTRY ENDPOINTS
# =============================================================================

@router.post("/journal-entries", response_model=JournalEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_journal_entry(
    data: JournalEntryCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """
    Post a journal entry.

    Returns 422 with the violated rule in ``detail.details.rule`` when the
    lines are not a valid double entry.
    """
    service = get_ledger_service(db)
    return await service.post_entry(identity.company_id, data, identity.user_id)


@router.get("/journal-entries", response_model=JournalEntryListResponse)
async def list_journal_entries(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_void: bool = Query(False, description="Include voided entries"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_ledger_service(db)
    items, total = await service.list_entries(
        identity.company_id,
        start_date=start_date,
        end_date=end_date,
        include_void=include_void,
        limit=limit,
        offset=offset,
    )
    return JournalEntryListResponse(
        items=[JournalEntryResponse.model_validate(e) for e in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/journal-entries/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_ledger_service(db)
    return await service.get_entry(identity.company_id, entry_id)


@router.post("/journal-entries/{entry_id}/void", response_model=JournalEntryResponse)
async def void_journal_entry(
    entry_id: uuid.UUID,
    data: Optional[JournalEntryVoid] = None,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Void a posted entry. Its lines are kept for audit."""
    service = get_ledger_service(db)
    return await service.void_entry(
        identity.company_id,
        entry_id,
        identity.user_id,
        reason=data.reason if data else None,
    )
