"""
YaadBooks Ledger - Exchange Rate Model

Date-scoped exchange rates. Each row stores the quoted rate together
with its inverse (both at 6 decimal places) so reverse lookups never
divide at read time.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class ExchangeRate(BaseModel):
    """
    Exchange rate for a currency pair on a given date.
    1 from_currency = rate to_currency.
    """
    __tablename__ = "exchange_rates"

    from_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        comment="Source currency (e.g., USD)"
    )
    to_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        comment="Target currency (e.g., JMD)"
    )
    rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        comment="1 from_currency = rate to_currency"
    )
    inverse_rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        comment="1 to_currency = inverse_rate from_currency"
    )
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        default="MANUAL",
        comment="BOJ, MANUAL, api feed name"
    )
    is_manual_override: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Entered by a user; automated feeds never replace it"
    )

    __table_args__ = (
        UniqueConstraint("from_currency", "to_currency", "rate_date", name="uq_exchange_rate_pair_date"),
        Index("ix_exchange_rate_lookup", "from_currency", "to_currency", "rate_date"),
    )

    def __repr__(self) -> str:
        return f"<ExchangeRate({self.from_currency}/{self.to_currency} {self.rate} @ {self.rate_date})>"
