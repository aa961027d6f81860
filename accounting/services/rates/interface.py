"""
Exchange Rate Source Interface

DESIGN DECISION: Rates come from an external collaborator behind a small
async interface. The lookup is the only place the accounting core may wait
on I/O, which is why it is the one async seam: the normalizer can put a
timeout around it without threads.

A rate source NEVER makes up a rate. If it does not know one, it raises
RateUnavailableError and the caller decides what to do.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional


class RateUnavailableError(Exception):
    """No exchange rate could be resolved for a currency pair and day."""

    def __init__(
        self,
        base: str,
        quote: str,
        as_of: Optional[date] = None,
        reason: Optional[str] = None,
    ):
        self.base = base
        self.quote = quote
        self.as_of = as_of
        self.reason = reason
        message = f"No {base}->{quote} rate"
        if as_of is not None:
            message += f" valid on {as_of.isoformat()}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class RateSourceInterface(ABC):
    """Supplies the price of one unit of base currency in quote currency."""

    @abstractmethod
    async def get_rate(self, base: str, quote: str, as_of: date) -> Decimal:
        """
        Look up the rate valid on a given day.

        Args:
            base: ISO code being converted from
            quote: ISO code being converted to
            as_of: Day the rate must be valid on

        Returns:
            Units of quote currency per one unit of base currency

        Raises:
            RateUnavailableError: If no rate is known for that pair and day
        """
        pass
