"""Exchange rate sources package."""

from accounting.services.rates.interface import (
    RateSourceInterface,
    RateUnavailableError,
)
from accounting.services.rates.static import StaticRateSource
from accounting.services.rates.google_sheets import GoogleSheetsRateSource

__all__ = [
    "GoogleSheetsRateSource",
    "RateSourceInterface",
    "RateUnavailableError",
    "StaticRateSource",
]
