"""
YaadBooks Ledger - Exchange Rate Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator


class ExchangeRateCreate(BaseModel):
    """Schema for adding or correcting a rate. Manual entries are overrides by default."""
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field("JMD", min_length=3, max_length=3)
    rate: Decimal = Field(..., gt=0)
    rate_date: date
    source: str = Field("MANUAL", max_length=50)
    is_manual_override: bool = True

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class ExchangeRateResponse(BaseModel):
    """Schema for exchange rate response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    from_currency: str
    to_currency: str
    rate: Decimal
    inverse_rate: Decimal
    rate_date: date
    source: str
    is_manual_override: bool
    created_at: datetime


class ConversionResponse(BaseModel):
    """Result of converting an amount at the rate in force on a date."""
    amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    converted_amount: Decimal
    as_of: date
