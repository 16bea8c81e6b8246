"""
YaadBooks Ledger - Exchange Rates API Router
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import IdentityContext, get_identity
from app.schemas.currency import ConversionResponse, ExchangeRateCreate, ExchangeRateResponse
from app.services.currency_service import get_currency_service, to_base

router = APIRouter(prefix="/exchange-rates", tags=["Exchange Rates"])


@router.get("", response_model=List[ExchangeRateResponse])
async def list_exchange_rates(
    from_currency: Optional[str] = Query(None, min_length=3, max_length=3),
    to_currency: Optional[str] = Query(None, min_length=3, max_length=3),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    service = get_currency_service(db)
    return await service.list_rates(from_currency, to_currency, start_date, end_date, limit=limit)


@router.post("", response_model=ExchangeRateResponse, status_code=status.HTTP_201_CREATED)
async def upsert_exchange_rate(
    data: ExchangeRateCreate,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Add or correct the rate for a currency pair on a date."""
    service = get_currency_service(db)
    return await service.upsert_rate(
        data.from_currency,
        data.to_currency,
        data.rate,
        data.rate_date,
        source=data.source,
        is_manual_override=data.is_manual_override,
    )


@router.get("/convert", response_model=ConversionResponse)
async def convert_amount(
    amount: Decimal = Query(...),
    from_currency: str = Query(..., min_length=3, max_length=3),
    to_currency: str = Query("JMD", min_length=3, max_length=3),
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Convert an amount at the most recent rate on or before ``as_of``."""
    as_of = as_of or date.today()
    service = get_currency_service(db)
    rate = await service.require_rate(from_currency, to_currency, as_of)
    return ConversionResponse(
        amount=amount,
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        rate=rate,
        converted_amount=to_base(amount, rate),
        as_of=as_of,
    )
