"""
YaadBooks Ledger - Banking API Router

Bank accounts, statement imports and bank transactions.
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import IdentityContext, get_identity
from app.schemas.banking import (
    BankAccountCreate,
    BankAccountResponse,
    BankTransactionListResponse,
    BankTransactionResponse,
    ImportBatchResponse,
    ImportResultResponse,
    ManualTransactionCreate,
)
from app.services.bank_import_service import get_bank_import_service

router = APIRouter(prefix="/banking", tags=["Banking"])


# =============================================================================
# BANK ACCOUNT ENDPOINTS
# =============================================================================

@router.post("/accounts", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_bank_account(
    data: BankAccountCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Create a bank account for the current company."""
    service = get_bank_import_service(db)
    return await service.create_bank_account(identity.company_id, data, identity.user_id)


@router.get("/accounts", response_model=List[BankAccountResponse])
async def list_bank_accounts(
    is_active: Optional[bool] = Query(True, description="Filter by active status"),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_bank_import_service(db)
    return await service.list_bank_accounts(identity.company_id, is_active=is_active)


@router.get("/accounts/{account_id}", response_model=BankAccountResponse)
async def get_bank_account(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_bank_import_service(db)
    return await service.get_bank_account(identity.company_id, account_id)


# =============================================================================
# STATEMENT IMPORT ENDPOINTS
# =============================================================================

@router.post("/accounts/{account_id}/import", response_model=ImportResultResponse)
async def import_statement(
    account_id: uuid.UUID,
    file: UploadFile = File(..., description="CSV, OFX or QFX statement export"),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """
    Import a bank statement file.

    Rows already present for the account are skipped, so importing the
    same file twice adds nothing the second time.
    """
    content = await file.read()
    service = get_bank_import_service(db)
    result = await service.import_statement(
        company_id=identity.company_id,
        bank_account_id=account_id,
        file_bytes=content,
        file_name=file.filename or "statement",
        user_id=identity.user_id,
    )
    return ImportResultResponse(
        batch_id=result.batch_id,
        imported=result.imported,
        skipped=result.skipped,
        total_parsed=result.total_parsed,
        detected_format=result.detected_format.value,
        bank_name=result.bank_name,
        account_number=result.account_number,
        layout=result.layout,
    )


@router.get("/import-batches", response_model=List[ImportBatchResponse])
async def list_import_batches(
    bank_account_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_bank_import_service(db)
    return await service.list_import_batches(identity.company_id, bank_account_id, limit=limit)


@router.get("/import-batches/{batch_id}", response_model=ImportBatchResponse)
async def get_import_batch(
    batch_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_bank_import_service(db)
    return await service.get_import_batch(identity.company_id, batch_id)


# =============================================================================
# TRANSACTION ENDPOINTS
# =============================================================================

@router.post(
    "/accounts/{account_id}/transactions",
    response_model=BankTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_transaction(
    account_id: uuid.UUID,
    data: ManualTransactionCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Record a hand-entered bank transaction (withdrawals negative)."""
    service = get_bank_import_service(db)
    return await service.create_manual_transaction(identity.company_id, account_id, data, identity.user_id)


@router.get("/accounts/{account_id}/transactions", response_model=BankTransactionListResponse)
async def list_transactions(
    account_id: uuid.UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    is_reconciled: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_bank_import_service(db)
    items, total = await service.list_transactions(
        identity.company_id,
        account_id,
        start_date=start_date,
        end_date=end_date,
        is_reconciled=is_reconciled,
        limit=limit,
        offset=offset,
    )
    return BankTransactionListResponse(
        items=[BankTransactionResponse.model_validate(t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )
