"""
YaadBooks Ledger - FastAPI Dependencies

Caller identity for request handlers. Database sessions come from
app.database.get_db.

Authentication and permission checks happen upstream of this service.
The gateway forwards the already-authorized tenant and user as headers:
    X-Company-Id: tenant (company) the request acts on
    X-User-Id:    acting user, recorded on created and audited rows
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from app.utils.error_handling import AuthenticationException


@dataclass(frozen=True)
class IdentityContext:
    """Tenant and acting user for the current request."""
    company_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise AuthenticationException(f"{header} header is not a valid UUID")


async def get_identity(
    x_company_id: Optional[str] = Header(None, alias="X-Company-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> IdentityContext:
    """
    Resolve the identity context from request headers.

    Raises:
        AuthenticationException: company header missing or malformed
    """
    if not x_company_id:
        raise AuthenticationException("X-Company-Id header is required")

    company_id = _parse_uuid(x_company_id, "X-Company-Id")
    user_id = _parse_uuid(x_user_id, "X-User-Id") if x_user_id else None
    return IdentityContext(company_id=company_id, user_id=user_id)
