"""Currency normalization package."""

from accounting.currency.normalizer import (
    ConversionSession,
    CurrencyNormalizer,
    validate_currency,
)
from accounting.models.money import minor_unit
from accounting.models.money import quantize_amount as quantize

__all__ = [
    "ConversionSession",
    "CurrencyNormalizer",
    "minor_unit",
    "quantize",
    "validate_currency",
]
