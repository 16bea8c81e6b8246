"""
YaadBooks Ledger - Audit Trail Service

Best-effort audit logging for ledger, banking and reconciliation
changes. Audit writes happen after the primary operation has committed
and a failed audit write never fails the operation that triggered it.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class AuditService:
    """Service for writing and reading the audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        company_id: Optional[uuid.UUID],
        entity_type: str,
        entity_id: Any,
        action: AuditAction,
        user_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Log an audit action and commit it.

        Returns None when the write fails; the failure is logged and
        swallowed.
        """
        old_values = _jsonable(old_values) if old_values else None
        new_values = _jsonable(new_values) if new_values else None

        changed_fields = None
        if action == AuditAction.UPDATE and old_values and new_values:
            changed_fields = self._changed_fields(old_values, new_values)

        audit_log = AuditLog(
            company_id=company_id,
            target_entity_type=entity_type,
            target_entity_id=str(entity_id),
            action=action,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed_fields,
            description=description,
        )

        # The savepoint confines a failed insert to the audit row; the
        # caller's committed objects stay loaded
        try:
            async with self.db.begin_nested():
                self.db.add(audit_log)
        except SQLAlchemyError as exc:
            logger.warning(f"Audit log write failed for {entity_type}:{entity_id} ({action.value}): {exc}")
            return None

        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.warning(f"Audit log commit failed for {entity_type}:{entity_id} ({action.value}): {exc}")
            return None

        return audit_log

    def _changed_fields(
        self,
        old_values: Dict[str, Any],
        new_values: Dict[str, Any],
    ) -> List[str]:
        """Keys whose value differs between old and new."""
        all_keys = set(old_values.keys()) | set(new_values.keys())
        return sorted(key for key in all_keys if old_values.get(key) != new_values.get(key))

    async def get_audit_logs(
        self,
        company_id: uuid.UUID,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        """Get audit logs for a company, newest first."""
        query = select(AuditLog).where(AuditLog.company_id == company_id)
        if entity_type:
            query = query.where(AuditLog.target_entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.target_entity_id == str(entity_id))
        if action:
            query = query.where(AuditLog.action == action)
        query = query.order_by(AuditLog.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())
