"""
YaadBooks Ledger - Currency Service

Date-scoped exchange rates and rounding-consistent conversion:
- Most recent rate on or before a date, never interpolated
- Reverse lookups read the stored inverse instead of dividing
- No cross rates through a third currency
- Round half up to 2 decimal places at every conversion step
- Manual overrides are never replaced by automated rate feeds
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.currency import ExchangeRate
from app.utils.error_handling import RateUnavailableException, ValidationException

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.000001")
ONE = Decimal("1")


def round_money(amount: Decimal) -> Decimal:
    """Round half up to cents."""
    return Decimal(amount).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def round_rate(rate: Decimal) -> Decimal:
    """Round half up to 6 decimal places."""
    return Decimal(rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def to_base(amount: Decimal, rate: Decimal) -> Decimal:
    """Convert a foreign amount into the base currency."""
    return round_money(round_money(amount) * Decimal(rate))


def from_base(amount_base: Decimal, rate: Decimal) -> Decimal:
    """Convert a base-currency amount back into the foreign currency."""
    rate = Decimal(rate)
    if rate <= 0:
        raise ValidationException("Exchange rate must be positive", field="rate", rule="positive_rate")
    return round_money(round_money(amount_base) / rate)


@dataclass
class RateFeedItem:
    """One quote from an automated rate source."""
    from_currency: str
    to_currency: str
    rate: Decimal
    rate_date: date


@dataclass
class RateFeedResult:
    """Outcome of applying an automated rate feed."""
    applied: int = 0
    skipped_manual: int = 0


def parse_rate_feed(payload: Dict[str, Any]) -> List[RateFeedItem]:
    """
    Read a rate feed document:

        {"date": "2024-01-31",
         "rates": [{"from": "USD", "to": "JMD", "rate": "155.2310"}, ...]}

    A per-quote "date" overrides the document date. Malformed quotes are
    logged and dropped.
    """
    default_date = payload.get("date")
    items: List[RateFeedItem] = []
    for quote in payload.get("rates", []):
        try:
            items.append(RateFeedItem(
                from_currency=str(quote["from"]).upper(),
                to_currency=str(quote["to"]).upper(),
                rate=Decimal(str(quote["rate"])),
                rate_date=date.fromisoformat(str(quote.get("date") or default_date)),
            ))
        except (KeyError, ValueError, InvalidOperation) as exc:
            logger.warning(f"Dropping malformed rate quote {quote!r}: {exc}")
    return items


async def fetch_rate_feed(url: str, timeout: Optional[float] = None) -> List[RateFeedItem]:
    """Download and parse the configured rate feed."""
    async with httpx.AsyncClient(timeout=timeout or settings.rate_feed_timeout_seconds) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Rate feed download failed: {e}")
            raise
        return parse_rate_feed(response.json())


class CurrencyService:
    """Service for exchange rates and currency conversion."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # RATE LOOKUP
    # =========================================================================

    async def _latest(self, from_currency: str, to_currency: str, as_of: date) -> Optional[ExchangeRate]:
        result = await self.db.execute(
            select(ExchangeRate)
            .where(and_(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
                ExchangeRate.rate_date <= as_of,
            ))
            .order_by(ExchangeRate.rate_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: Optional[date] = None,
    ) -> Optional[Decimal]:
        """
        Get the exchange rate for a currency pair.

        Returns 1 for the same currency, the most recent rate on or before
        ``as_of`` for the exact pair, otherwise the stored inverse of the
        reverse pair. Returns None when neither exists; the caller decides
        whether that is fatal.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return ONE

        if as_of is None:
            as_of = date.today()

        direct = await self._latest(from_currency, to_currency, as_of)
        if direct:
            return direct.rate

        reverse = await self._latest(to_currency, from_currency, as_of)
        if reverse:
            logger.debug(f"Using stored inverse of {to_currency}/{from_currency} for {from_currency}/{to_currency}")
            return reverse.inverse_rate

        return None

    async def require_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """Like get_rate, but raise RateUnavailableException instead of returning None."""
        rate = await self.get_rate(from_currency, to_currency, as_of)
        if rate is None:
            raise RateUnavailableException(from_currency, to_currency, as_of or date.today())
        return rate

    # =========================================================================
    # CONVERSION
    # =========================================================================

    async def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """Convert an amount between two currencies using the rate in force on ``as_of``."""
        rate = await self.require_rate(from_currency, to_currency, as_of)
        return to_base(amount, rate)

    async def convert_to_base(
        self,
        amount: Decimal,
        currency: str,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """Convert an amount into the company base currency (JMD)."""
        return await self.convert(amount, currency, settings.base_currency, as_of)

    async def convert_via_base(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """
        Convert using each foreign currency's rate against the base currency.

        Foreign amounts go into base with to_base and come out of base with
        from_base, so a JMD amount meets a USD account through the stored
        USD/JMD rate rather than its six-place inverse. Pairs that do not
        involve the base currency use the direct pair only.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        base = settings.base_currency
        if from_currency == to_currency:
            return round_money(amount)
        if base not in (from_currency, to_currency):
            return await self.convert(amount, from_currency, to_currency, as_of)

        if from_currency == base:
            rate = await self.require_rate(to_currency, base, as_of)
            return from_base(amount, rate)
        rate = await self.require_rate(from_currency, base, as_of)
        return to_base(amount, rate)

    # =========================================================================
    # RATE MANAGEMENT
    # =========================================================================

    async def upsert_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        rate_date: date,
        source: str = "MANUAL",
        is_manual_override: bool = True,
        commit: bool = True,
    ) -> ExchangeRate:
        """
        Add or update the rate for (from, to, rate_date).

        The inverse is stored alongside the rate. An automated update
        (``is_manual_override=False``) leaves an existing manual override
        for that date untouched and returns it.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        rate = Decimal(rate)

        if from_currency == to_currency:
            raise ValidationException(
                "From and to currencies must differ",
                field="to_currency",
                rule="distinct_currencies",
            )
        if rate <= 0:
            raise ValidationException("Exchange rate must be positive", field="rate", rule="positive_rate")

        rate = round_rate(rate)
        inverse = round_rate(ONE / rate)

        result = await self.db.execute(
            select(ExchangeRate)
            .where(and_(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
                ExchangeRate.rate_date == rate_date,
            ))
        )
        existing = result.scalar_one_or_none()

        if existing:
            if existing.is_manual_override and not is_manual_override:
                logger.warning(
                    f"Skipping automated rate {from_currency}/{to_currency} on {rate_date} "
                    f"from {source}: manual override in place"
                )
                return existing
            existing.rate = rate
            existing.inverse_rate = inverse
            existing.source = source
            existing.is_manual_override = is_manual_override
            record = existing
        else:
            record = ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                inverse_rate=inverse,
                rate_date=rate_date,
                source=source,
                is_manual_override=is_manual_override,
            )
            self.db.add(record)

        if commit:
            await self.db.commit()
            await self.db.refresh(record)
        else:
            await self.db.flush()

        logger.info(f"Exchange rate {from_currency}/{to_currency} on {rate_date} set to {rate} ({source})")
        return record

    async def apply_rate_feed(self, items: Iterable[RateFeedItem], source: str) -> RateFeedResult:
        """Apply quotes from an automated source in one transaction."""
        outcome = RateFeedResult()
        for item in items:
            record = await self.upsert_rate(
                item.from_currency,
                item.to_currency,
                item.rate,
                item.rate_date,
                source=source,
                is_manual_override=False,
                commit=False,
            )
            if record.is_manual_override:
                outcome.skipped_manual += 1
            else:
                outcome.applied += 1
        await self.db.commit()
        return outcome

    async def list_rates(
        self,
        from_currency: Optional[str] = None,
        to_currency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
    ) -> List[ExchangeRate]:
        """List stored rates, newest first."""
        query = select(ExchangeRate)
        if from_currency:
            query = query.where(ExchangeRate.from_currency == from_currency.upper())
        if to_currency:
            query = query.where(ExchangeRate.to_currency == to_currency.upper())
        if start_date:
            query = query.where(ExchangeRate.rate_date >= start_date)
        if end_date:
            query = query.where(ExchangeRate.rate_date <= end_date)
        query = query.order_by(ExchangeRate.rate_date.desc(), ExchangeRate.from_currency).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())


def get_currency_service(db: AsyncSession) -> CurrencyService:
    """Factory function for CurrencyService."""
    return CurrencyService(db)
