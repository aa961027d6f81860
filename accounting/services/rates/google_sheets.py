"""
Google Sheets Rate Source

Reads exchange rates from a "Rates" worksheet with the columns
[effective_date, base, quote, rate], one dated rate per row.

The sheet is read on every lookup; the normalizer's per-call session is
what keeps one aggregation from reading it more than once per pair and day.
Nothing is cached here, so a long-lived process always sees the current
sheet.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

from accounting.services.rates.interface import (
    RateSourceInterface,
    RateUnavailableError,
)
from accounting.services.rates.static import StaticRateSource
from accounting.services.storage.google_sheets import GoogleSheetsClient, sheets_retry


class GoogleSheetsRateSource(RateSourceInterface):
    """Rate source backed by a worksheet of dated rates."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @sheets_retry
    def _read_rows(self) -> list[list[str]]:
        sheet = self._client.get_rates_sheet()
        return sheet.get_all_values()[1:]  # Skip header

    def _build_table(self, rows: list[list[str]]) -> StaticRateSource:
        table = StaticRateSource()
        for row in rows:
            if len(row) < 4 or not row[0]:
                continue
            try:
                table.add_rate(
                    base=row[1],
                    quote=row[2],
                    rate=row[3],
                    effective_date=date.fromisoformat(row[0].strip()),
                )
            except ValueError:
                continue  # Skip malformed rows
        return table

    async def get_rate(self, base: str, quote: str, as_of: date) -> Decimal:
        try:
            rows = await asyncio.to_thread(self._read_rows)
        except Exception as e:
            raise RateUnavailableError(base, quote, as_of, reason=f"rate sheet unreadable: {e}")
        return self._build_table(rows).resolve(base, quote, as_of)
