"""
Static Rate Source

A dated rate table held in memory. Each pair carries a list of
(effective_date, rate) entries; a lookup returns the latest entry whose
effective date is on or before the requested day.

If only the reverse pair is known, its reciprocal is used. Nothing else is
inferred: there is no triangulation through a third currency and no
fallback rate.
"""

from bisect import bisect_right
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping, Optional, Union

from accounting.models.money import normalize_currency_code
from accounting.services.rates.interface import (
    RateSourceInterface,
    RateUnavailableError,
)


RateInput = Union[Decimal, str, int]


def _to_rate(value: RateInput) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid rate: {value!r}")
    if not rate.is_finite() or rate <= 0:
        raise ValueError(f"Rate must be a positive number: {value!r}")
    return rate


class StaticRateSource(RateSourceInterface):
    """
    In-memory dated rate table.

    Usage:
        source = StaticRateSource()
        source.add_rate("EUR", "USD", Decimal("1.08"), date(2024, 1, 1))
        rate = await source.get_rate("EUR", "USD", date(2024, 3, 1))
    """

    def __init__(
        self,
        rates: Optional[Mapping[tuple[str, str], RateInput]] = None,
        effective_date: date = date.min,
    ):
        # (base, quote) -> sorted list of (effective_date, rate)
        self._table: dict[tuple[str, str], list[tuple[date, Decimal]]] = {}
        for (base, quote), rate in (rates or {}).items():
            self.add_rate(base, quote, rate, effective_date)

    def add_rate(
        self,
        base: str,
        quote: str,
        rate: RateInput,
        effective_date: date = date.min,
    ) -> None:
        """Register a rate valid from effective_date onwards."""
        key = (normalize_currency_code(base), normalize_currency_code(quote))
        entries = self._table.setdefault(key, [])
        entries[:] = [e for e in entries if e[0] != effective_date]
        entries.append((effective_date, _to_rate(rate)))
        entries.sort(key=lambda e: e[0])

    def add_rates(self, rows: Iterable[tuple[date, str, str, RateInput]]) -> None:
        """Register many (effective_date, base, quote, rate) rows."""
        for effective_date, base, quote, rate in rows:
            self.add_rate(base, quote, rate, effective_date)

    def _lookup(self, base: str, quote: str, as_of: date) -> Optional[Decimal]:
        entries = self._table.get((base, quote))
        if not entries:
            return None
        position = bisect_right([e[0] for e in entries], as_of)
        if position == 0:
            return None
        return entries[position - 1][1]

    def resolve(self, base: str, quote: str, as_of: date) -> Decimal:
        """Synchronous lookup used by get_rate and by table-backed sources."""
        base = normalize_currency_code(base)
        quote = normalize_currency_code(quote)

        direct = self._lookup(base, quote, as_of)
        if direct is not None:
            return direct

        inverse = self._lookup(quote, base, as_of)
        if inverse is not None:
            return Decimal(1) / inverse

        raise RateUnavailableError(base, quote, as_of)

    async def get_rate(self, base: str, quote: str, as_of: date) -> Decimal:
        return self.resolve(base, quote, as_of)
