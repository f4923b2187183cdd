"""
Periods -- Month and quarter reporting periods.

Sales history arrives labelled with a reporting period rather than a
transaction date. Four label shapes are accepted and normalised to one
canonical key:

    YYYY-MM   -> month    (key "2024-03", label "03-2024")
    MM-YYYY   -> month
    YYYY-Qn   -> quarter  (key "2024-Q1", label "Q1-2024")
    Qn-YYYY   -> quarter

A month belongs to the quarter that contains it, so a growth comparison can
use quarterly baseline/current periods over monthly transactions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum

from gtn_kernel.exceptions import InvalidPeriodError

_MONTH_YM = re.compile(r"^(\d{4})-(\d{1,2})$")
_MONTH_MY = re.compile(r"^(\d{1,2})-(\d{4})$")
_QUARTER_YQ = re.compile(r"^(\d{4})-Q([1-4])$", re.IGNORECASE)
_QUARTER_QY = re.compile(r"^Q([1-4])-(\d{4})$", re.IGNORECASE)


class PeriodKind(str, Enum):
    """Granularity of a reporting period."""

    MONTH = "M"
    QUARTER = "Q"


@dataclass(frozen=True)
class Period:
    """
    A calendar month or quarter.

    Immutable and hashable; two periods are equal when kind, year and
    number match, whichever label shape they were parsed from.
    """

    kind: PeriodKind
    year: int
    number: int  # month 1-12 or quarter 1-4

    def __post_init__(self) -> None:
        upper = 12 if self.kind == PeriodKind.MONTH else 4
        if not 1 <= self.number <= upper:
            raise InvalidPeriodError(f"{self.year}-{self.kind.value}{self.number}")

    @classmethod
    def month(cls, year: int, month: int) -> Period:
        return cls(PeriodKind.MONTH, year, month)

    @classmethod
    def quarter(cls, year: int, quarter: int) -> Period:
        return cls(PeriodKind.QUARTER, year, quarter)

    @classmethod
    def of_date(cls, value: date) -> Period:
        """The month containing a date."""
        return cls.month(value.year, value.month)

    @property
    def key(self) -> str:
        """Canonical sortable key."""
        if self.kind == PeriodKind.MONTH:
            return f"{self.year}-{self.number:02d}"
        return f"{self.year}-Q{self.number}"

    @property
    def label(self) -> str:
        """Display label."""
        if self.kind == PeriodKind.MONTH:
            return f"{self.number:02d}-{self.year}"
        return f"Q{self.number}-{self.year}"

    @property
    def sort_key(self) -> tuple[int, int]:
        """Chronological ordering key; a quarter sorts with its first month."""
        if self.kind == PeriodKind.MONTH:
            return (self.year, self.number)
        return (self.year, (self.number - 1) * 3 + 1)

    def to_quarter(self) -> Period:
        """The quarter containing this period."""
        if self.kind == PeriodKind.QUARTER:
            return self
        return Period.quarter(self.year, (self.number - 1) // 3 + 1)

    def contains(self, other: Period) -> bool:
        """True when ``other`` falls entirely within this period."""
        if self.kind == other.kind:
            return self == other
        if self.kind == PeriodKind.QUARTER:
            return other.to_quarter() == self
        return False

    def __str__(self) -> str:
        return self.key


def parse_period(raw: str | date | Period) -> Period:
    """
    Normalise a period label.

    Raises:
        InvalidPeriodError: If the label matches none of the accepted shapes.
    """
    if isinstance(raw, Period):
        return raw
    if isinstance(raw, date):
        return Period.of_date(raw)

    s = str(raw or "").strip()

    m = _MONTH_YM.match(s)
    if m:
        return _month_or_raise(s, int(m.group(1)), int(m.group(2)))

    m = _MONTH_MY.match(s)
    if m:
        return _month_or_raise(s, int(m.group(2)), int(m.group(1)))

    m = _QUARTER_YQ.match(s)
    if m:
        return Period.quarter(int(m.group(1)), int(m.group(2)))

    m = _QUARTER_QY.match(s)
    if m:
        return Period.quarter(int(m.group(2)), int(m.group(1)))

    raise InvalidPeriodError(s)


def _month_or_raise(raw: str, year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise InvalidPeriodError(raw)
    return Period.month(year, month)
