"""
Bucket Keys

Typed grouping keys for the revenue series. Every key type is ordered
chronologically by its fields, so sorting a list of keys of one
granularity yields calendar order without reference to any database
date function.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Union


class Granularity(str, Enum):
    """Revenue series grouping interval"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True, order=True)
class DayKey:
    day: date
    
    @property
    def label(self) -> str:
        return self.day.isoformat()


@dataclass(frozen=True, order=True)
class IsoWeekKey:
    """ISO week: a week spanning Dec/Jan belongs to a single week-year."""
    iso_year: int
    week: int
    
    @property
    def label(self) -> str:
        return f"{self.iso_year}-W{self.week:02d}"


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int
    
    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True, order=True)
class YearKey:
    year: int
    
    @property
    def label(self) -> str:
        return str(self.year)


BucketKey = Union[DayKey, IsoWeekKey, MonthKey, YearKey]


def bucket_key(day: date, granularity: Granularity) -> BucketKey:
    """Grouping key of a local calendar date at the given granularity."""
    if granularity is Granularity.DAY:
        return DayKey(day)
    if granularity is Granularity.WEEK:
        iso = day.isocalendar()
        return IsoWeekKey(iso[0], iso[1])
    if granularity is Granularity.MONTH:
        return MonthKey(day.year, day.month)
    return YearKey(day.year)


@dataclass
class MetricBucket:
    """One point of a revenue series. Ephemeral, never persisted."""
    label: str
    revenue: float = 0.0
    order_count: int = 0


@dataclass
class DailyBucket(MetricBucket):
    """Gap-filled overview point with the viewer's "today" marker."""
    day: date = field(default=date.min)
    is_today: bool = False
