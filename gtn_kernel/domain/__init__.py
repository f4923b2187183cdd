"""
Pure domain layer.

Value objects, periods, and input records with NO dependencies on:
- Storage or upload parsing
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from gtn_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from gtn_kernel.domain.periods import Period, PeriodKind, parse_period
from gtn_kernel.domain.records import (
    AipVersion,
    Customer,
    CustomerDiscount,
    GrossLine,
    Product,
    SalesTransaction,
    Scalar,
    TimeBounded,
    covers,
)
from gtn_kernel.domain.values import Currency, Money, round_half_up, to_decimal

__all__ = [
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "Money",
    "round_half_up",
    "to_decimal",
    "Period",
    "PeriodKind",
    "parse_period",
    "AipVersion",
    "Customer",
    "CustomerDiscount",
    "GrossLine",
    "Product",
    "SalesTransaction",
    "Scalar",
    "TimeBounded",
    "covers",
]
