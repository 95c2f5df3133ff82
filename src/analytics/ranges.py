"""
Range Resolver

Maps a symbolic range keyword or an explicit from/to pair onto a closed
interval of aware datetimes, clamped to local day boundaries in the
analytics time zone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.config import get_settings
from src.errors import InvalidParameter, InvalidRange

RANGE_KEYWORDS = (
    "all",
    "today",
    "yesterday",
    "last7",
    "last30",
    "thisMonth",
    "lastMonth",
    "thisYear",
    "lastYear",
)

START_OF_DAY = time(0, 0, 0, 0)
END_OF_DAY = time(23, 59, 59, 999000)

DateInput = Union[str, date, datetime, None]


def get_zone(name: Optional[Union[str, tzinfo]] = None) -> tzinfo:
    """Resolve a zone name (default: ANALYTICS_TIMEZONE) to a tzinfo."""
    if isinstance(name, tzinfo):
        return name
    zone_name = name or get_settings().analytics.timezone
    try:
        return ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidParameter(f"Unknown time zone: {zone_name!r}", details={"tz": zone_name}) from e


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, START_OF_DAY, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Wall-clock date of an instant in `tz`; naive values are treated as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


@dataclass(frozen=True)
class DateRange:
    """
    Resolved range. Both bounds None means unbounded ("all").
    
    `keyword` is the symbolic range that produced it, or None when the
    bounds came from explicit dates.
    """
    start: Optional[datetime]
    end: Optional[datetime]
    keyword: Optional[str] = None
    
    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None
    
    def as_utc_naive(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Bounds converted to the naive-UTC storage convention."""
        def convert(value: Optional[datetime]) -> Optional[datetime]:
            if value is None:
                return None
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        
        return convert(self.start), convert(self.end)
    
    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(timespec="milliseconds") if self.start else None,
            "end": self.end.isoformat(timespec="milliseconds") if self.end else None,
            "range": self.keyword,
        }


def _parse_day(value: DateInput, tz: tzinfo, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return local_date(value, tz) if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidRange(
            f"Unparseable {field!r} date: {text!r}",
            details={"from": None, "to": None, "field": field},
        ) from e
    return local_date(parsed, tz) if parsed.tzinfo else parsed.date()


def _window(start_day: date, end_day: date, tz: tzinfo, keyword: Optional[str]) -> DateRange:
    return DateRange(start_of_day(start_day, tz), end_of_day(end_day, tz), keyword)


def resolve_range(
    range_: Optional[str] = None,
    date_from: DateInput = None,
    date_to: DateInput = None,
    *,
    now: Optional[datetime] = None,
    tz: Optional[Union[str, tzinfo]] = None,
) -> DateRange:
    """
    Resolve a range selector into day-clamped bounds.
    
    Explicit dates win over the keyword. Either explicit bound may be
    omitted, leaving that side open.
    
    Args:
        range_: One of RANGE_KEYWORDS (default "all")
        date_from: ISO date/datetime string or date
        date_to: ISO date/datetime string or date
        now: Reference instant; defaults to the current time
        tz: Zone for day boundaries; defaults to ANALYTICS_TIMEZONE
    
    Raises:
        InvalidRange: Unparseable explicit date, or start after end
        InvalidParameter: Unknown keyword or time zone
    """
    zone = get_zone(tz)
    
    if date_from not in (None, "") or date_to not in (None, ""):
        start_day = _parse_day(date_from, zone, "from")
        end_day = _parse_day(date_to, zone, "to")
        if start_day and end_day and start_day > end_day:
            raise InvalidRange(
                f"'from' ({start_day.isoformat()}) is after 'to' ({end_day.isoformat()})",
                details={"from": start_day.isoformat(), "to": end_day.isoformat()},
            )
        return DateRange(
            start_of_day(start_day, zone) if start_day else None,
            end_of_day(end_day, zone) if end_day else None,
        )
    
    keyword = range_ or "all"
    if keyword not in RANGE_KEYWORDS:
        raise InvalidParameter(
            f"Unknown range {keyword!r}",
            details={"range": keyword, "allowed": list(RANGE_KEYWORDS)},
        )
    
    if now is None:
        now = datetime.now(zone)
    today = local_date(now, zone) if now.tzinfo else now.date()
    
    if keyword == "all":
        return DateRange(None, None, keyword)
    if keyword == "today":
        return _window(today, today, zone, keyword)
    if keyword == "yesterday":
        yesterday = today - timedelta(days=1)
        return _window(yesterday, yesterday, zone, keyword)
    if keyword == "last7":
        return _window(today - timedelta(days=6), today, zone, keyword)
    if keyword == "last30":
        return _window(today - timedelta(days=29), today, zone, keyword)
    if keyword == "thisMonth":
        return _window(today.replace(day=1), today, zone, keyword)
    if keyword == "lastMonth":
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return _window(last_month_end.replace(day=1), last_month_end, zone, keyword)
    if keyword == "thisYear":
        return _window(date(today.year, 1, 1), today, zone, keyword)
    # lastYear
    return _window(date(today.year - 1, 1, 1), date(today.year - 1, 12, 31), zone, keyword)
