"""
YaadBooks Ledger - Sync Queue Model

Durable queue of mutations captured while a client was offline.
Items are replayed by the Celery worker with bounded retries.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, TenantMixin


class SyncQueueStatus(str, Enum):
    """Queue item lifecycle. DEAD items exhausted their retries."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"


class SyncQueueItem(BaseModel, TenantMixin):
    """A single queued mutation."""

    __tablename__ = "sync_queue_items"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    operation: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Handler name, e.g. journal_entry.post",
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    client_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Client-side id used to ignore repeated submissions",
    )

    status: Mapped[SyncQueueStatus] = mapped_column(
        SQLEnum(SyncQueueStatus),
        default=SyncQueueStatus.PENDING,
        nullable=False,
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_sync_queue_status_next", "status", "next_attempt_at"),
        Index("ix_sync_queue_company_client_ref", "company_id", "client_reference"),
    )
