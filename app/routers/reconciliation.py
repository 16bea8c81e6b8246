"""
YaadBooks Ledger - Bank Reconciliation API Router

Reconciliation workflow: start -> match / adjust -> complete or cancel.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import IdentityContext, get_identity
from app.models.reconciliation import ReconciliationStatus
from app.schemas.banking import BankTransactionResponse
from app.schemas.reconciliation import (
    AdjustmentCreate,
    BookDocumentResponse,
    ManualMatchRequest,
    MatchResultResponse,
    ReconciliationComplete,
    ReconciliationMatchResponse,
    ReconciliationResponse,
    ReconciliationStart,
    ReconciliationSummaryResponse,
    UnmatchRequest,
)
from app.services.reconciliation_service import get_reconciliation_service

router = APIRouter(prefix="/bank-reconciliation", tags=["Bank Reconciliation"])


@router.post("", response_model=ReconciliationResponse, status_code=status.HTTP_201_CREATED)
async def start_reconciliation(
    data: ReconciliationStart,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """
    Start reconciling a statement period.

    Returns 409 if the account already has a reconciliation in progress.
    """
    service = get_reconciliation_service(db)
    return await service.start_reconciliation(identity.company_id, data, identity.user_id)


@router.get("", response_model=List[ReconciliationResponse])
async def list_reconciliations(
    bank_account_id: Optional[uuid.UUID] = Query(None),
    status_filter: Optional[ReconciliationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.list_reconciliations(identity.company_id, bank_account_id, status_filter)


@router.get("/{reconciliation_id}", response_model=ReconciliationResponse)
async def get_reconciliation(
    reconciliation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.get_reconciliation(identity.company_id, reconciliation_id)


@router.get("/{reconciliation_id}/summary", response_model=ReconciliationSummaryResponse)
async def get_reconciliation_summary(
    reconciliation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.get_reconciliation_summary(identity.company_id, reconciliation_id)


# =============================================================================
# MATCHING
# =============================================================================

@router.post("/{reconciliation_id}/match", response_model=MatchResultResponse)
async def match_transactions(
    reconciliation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Auto-match bank transactions in the period against book documents."""
    service = get_reconciliation_service(db)
    result = await service.match_transactions(identity.company_id, reconciliation_id, identity.user_id)
    return MatchResultResponse(
        matched=[ReconciliationMatchResponse.model_validate(m) for m in result.matched],
        unmatched_bank=[BankTransactionResponse.model_validate(t) for t in result.unmatched_bank],
        unmatched_book=[BookDocumentResponse.model_validate(d) for d in result.unmatched_book],
        ambiguous={
            txn_id: [BookDocumentResponse.model_validate(d) for d in docs]
            for txn_id, docs in result.ambiguous.items()
        },
        book_balance=result.reconciliation.book_balance,
        difference=result.reconciliation.difference,
    )


@router.post("/{reconciliation_id}/manual-match", response_model=ReconciliationResponse)
async def manual_match(
    reconciliation_id: uuid.UUID,
    data: ManualMatchRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.manual_match(
        identity.company_id,
        reconciliation_id,
        data.bank_transaction_id,
        document_type=data.document_type,
        document_id=data.document_id,
        user_id=identity.user_id,
    )


@router.post("/{reconciliation_id}/unmatch", response_model=ReconciliationResponse)
async def unmatch(
    reconciliation_id: uuid.UUID,
    data: UnmatchRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.unmatch(identity.company_id, reconciliation_id, data.bank_transaction_id)


# =============================================================================
# ADJUSTMENTS & COMPLETION
# =============================================================================

@router.post("/{reconciliation_id}/adjustments", response_model=ReconciliationResponse)
async def add_adjustment(
    reconciliation_id: uuid.UUID,
    data: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.add_adjustment(identity.company_id, reconciliation_id, data, identity.user_id)


@router.post("/{reconciliation_id}/complete", response_model=ReconciliationResponse)
async def complete_reconciliation(
    reconciliation_id: uuid.UUID,
    data: Optional[ReconciliationComplete] = None,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """
    Complete the reconciliation.

    Returns 422 (rule ``unbalanced_reconciliation``) while the difference
    is not explained.
    """
    service = get_reconciliation_service(db)
    return await service.complete_reconciliation(
        identity.company_id,
        reconciliation_id,
        adjustments=data.adjustments if data else None,
        user_id=identity.user_id,
    )


@router.post("/{reconciliation_id}/cancel", response_model=ReconciliationResponse)
async def cancel_reconciliation(
    reconciliation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_reconciliation_service(db)
    return await service.cancel_reconciliation(identity.company_id, reconciliation_id, identity.user_id)
