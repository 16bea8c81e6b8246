"""
YaadBooks Ledger - Offline Sync API Router

Clients that worked offline push their queued mutations here. Items are
stored durably and replayed by the background worker.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import IdentityContext, get_identity
from app.schemas.sync import SyncQueueEnqueue, SyncQueueItemResponse
from app.services.sync_queue_service import get_sync_queue_service
from app.utils.error_handling import NotFoundException

router = APIRouter(prefix="/sync", tags=["Offline Sync"])


@router.post("/queue", response_model=SyncQueueItemResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_sync_item(
    data: SyncQueueEnqueue,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_sync_queue_service(db)
    return await service.enqueue(
        identity.company_id,
        data.operation,
        data.payload,
        user_id=identity.user_id,
        client_reference=data.client_reference,
    )


@router.get("/queue/{item_id}", response_model=SyncQueueItemResponse)
async def get_sync_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_sync_queue_service(db)
    item = await service.get_item(identity.company_id, item_id)
    if not item:
        raise NotFoundException("SyncQueueItem", item_id)
    return item
