"""
YaadBooks Ledger - Sync Queue Schemas
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.sync_queue import SyncQueueStatus


class SyncQueueEnqueue(BaseModel):
    """A mutation captured while the client was offline."""
    operation: str = Field(..., min_length=1, max_length=100, examples=["journal_entry.post"])
    payload: Dict[str, Any]
    client_reference: Optional[str] = Field(
        None,
        max_length=100,
        description="Client-side id; resubmitting the same id returns the existing item",
    )


class SyncQueueItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    operation: str
    client_reference: Optional[str] = None
    status: SyncQueueStatus
    retry_count: int
    max_retries: int
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
