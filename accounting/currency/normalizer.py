"""
Currency Normalizer

Converts amounts between currencies using an external rate source.

DESIGN DECISION: The normalizer never invents a rate.
- Identity conversion is exact and does no lookup
- A missing or slow rate raises RateUnavailableError
- There is no default rate, no last-known-good fallback, no global cache

Results are quantized to the target currency's smallest unit with banker's
rounding, so a converted amount is always a displayable line item.

Rate memoization exists only inside a ConversionSession, which lives for a
single aggregation call and is then thrown away.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

from accounting.config import get_settings
from accounting.exceptions import ValidationError
from accounting.models.ledger import ValidationIssue
from accounting.models.money import normalize_currency_code, quantize_amount
from accounting.services.rates import RateSourceInterface, RateUnavailableError


def validate_currency(code: str, field: str = "currency") -> str:
    """
    Normalize an ISO code or raise the ledger's ValidationError.
    """
    try:
        return normalize_currency_code(code)
    except ValueError as e:
        raise ValidationError(
            str(e),
            issues=[ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=str(e),
                severity="error",
                suggested_fix="Use a three-letter ISO 4217 code such as USD",
            )],
        )


class CurrencyNormalizer:
    """
    Converts amounts into a target currency.

    Usage:
        normalizer = CurrencyNormalizer(StaticRateSource({("EUR", "USD"): "1.08"}))
        usd = await normalizer.normalize(Decimal("10"), "EUR", "USD", date(2024, 3, 1))
    """

    def __init__(
        self,
        rate_source: RateSourceInterface,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            rate_source: Where rates come from
            timeout_seconds: Lookups slower than this count as unavailable.
                Defaults to RATES_LOOKUP_TIMEOUT_SECONDS.
        """
        self._rate_source = rate_source
        if timeout_seconds is None:
            timeout_seconds = get_settings().rates.lookup_timeout_seconds
        self._timeout = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    async def get_rate(self, base: str, quote: str, as_of: date) -> Decimal:
        """
        Fetch a rate, bounded by the lookup timeout.

        Raises:
            RateUnavailableError: If the source has no rate, fails, or is slow
        """
        try:
            rate = await asyncio.wait_for(
                self._rate_source.get_rate(base, quote, as_of),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise RateUnavailableError(
                base, quote, as_of,
                reason=f"lookup timed out after {self._timeout}s",
            )

        if not isinstance(rate, Decimal) or not rate.is_finite() or rate <= 0:
            raise RateUnavailableError(
                base, quote, as_of,
                reason=f"rate source returned an unusable rate: {rate!r}",
            )
        return rate

    async def normalize(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: date,
    ) -> Decimal:
        """
        Convert an amount using the rate valid on as_of.

        Raises:
            ValidationError: If either currency code is invalid
            RateUnavailableError: If no rate can be obtained
        """
        from_currency = validate_currency(from_currency, "from_currency")
        to_currency = validate_currency(to_currency, "to_currency")

        if from_currency == to_currency:
            return amount

        rate = await self.get_rate(from_currency, to_currency, as_of)
        return quantize_amount(amount * rate, to_currency)

    def session(self) -> "ConversionSession":
        """Start a conversion session with its own rate memo."""
        return ConversionSession(self)


class ConversionSession:
    """
    Rate memo scoped to one aggregation call.

    Failed lookups are remembered too, so a slow source is waited on at
    most once per (pair, day) within the session.
    """

    def __init__(self, normalizer: CurrencyNormalizer):
        self._normalizer = normalizer
        self._rates: dict[tuple[str, str, date], Decimal] = {}
        self._failures: dict[tuple[str, str, date], RateUnavailableError] = {}

    @property
    def lookups(self) -> int:
        """Distinct (pair, day) lookups attempted in this session."""
        return len(self._rates) + len(self._failures)

    async def _rate(self, base: str, quote: str, as_of: date) -> Decimal:
        key = (base, quote, as_of)
        if key in self._rates:
            return self._rates[key]
        if key in self._failures:
            raise self._failures[key]

        try:
            rate = await self._normalizer.get_rate(base, quote, as_of)
        except RateUnavailableError as e:
            self._failures[key] = e
            raise
        self._rates[key] = rate
        return rate

    async def normalize(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: date,
    ) -> Decimal:
        """Same contract as CurrencyNormalizer.normalize()."""
        from_currency = validate_currency(from_currency, "from_currency")
        to_currency = validate_currency(to_currency, "to_currency")

        if from_currency == to_currency:
            return amount

        rate = await self._rate(from_currency, to_currency, as_of)
        return quantize_amount(amount * rate, to_currency)
