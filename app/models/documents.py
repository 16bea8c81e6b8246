"""
YaadBooks Ledger - Book Documents

Payments and expenses recorded by other modules of the platform.
Reconciliation reads them as book-side candidates for bank activity.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Numeric, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, TenantMixin


class PaymentDirection(str, Enum):
    """Money received from a customer or sent to a supplier."""
    RECEIVED = "received"
    SENT = "sent"


class Payment(BaseModel, TenantMixin):
    """Customer receipt or supplier payment."""

    __tablename__ = "payments"

    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="JMD", nullable=False)
    direction: Mapped[PaymentDirection] = mapped_column(
        SQLEnum(PaymentDirection),
        default=PaymentDirection.RECEIVED,
        nullable=False,
    )
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == PaymentDirection.SENT:
            return -self.amount
        return self.amount


class Expense(BaseModel, TenantMixin):
    """Business expense. GCT is carried separately from the net amount."""

    __tablename__ = "expenses"

    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="GCT portion",
    )
    currency: Mapped[str] = mapped_column(String(3), default="JMD", nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def signed_amount(self) -> Decimal:
        """Expenses leave the bank, so they are negative."""
        return -((self.amount or Decimal("0")) + (self.tax_amount or Decimal("0")))
