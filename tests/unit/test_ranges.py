"""
Unit Tests - Range Resolver
"""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from src.analytics.ranges import RANGE_KEYWORDS, get_zone, resolve_range
from src.errors import InvalidParameter, InvalidRange

LONDON = ZoneInfo("Europe/London")
NOW = datetime(2024, 3, 15, 14, 30, tzinfo=LONDON)


class TestKeywordRanges:
    """Symbolic ranges against a frozen clock"""
    
    @pytest.mark.parametrize("keyword", [k for k in RANGE_KEYWORDS if k != "all"])
    def test_bounds_are_day_clamped(self, keyword):
        result = resolve_range(keyword, now=NOW, tz=LONDON)
        
        assert result.start <= result.end
        assert result.start.timetz().replace(tzinfo=None) == time(0, 0, 0, 0)
        assert result.end.timetz().replace(tzinfo=None) == time(23, 59, 59, 999000)
        assert result.start.tzinfo is LONDON
        assert result.keyword == keyword
    
    def test_all_is_unbounded(self):
        result = resolve_range(None, now=NOW, tz=LONDON)
        
        assert result.is_unbounded
        assert result.keyword == "all"
    
    def test_last_month_in_leap_year(self):
        result = resolve_range("lastMonth", now=NOW, tz=LONDON)
        
        assert result.start == datetime(2024, 2, 1, 0, 0, tzinfo=LONDON)
        assert result.end == datetime(2024, 2, 29, 23, 59, 59, 999000, tzinfo=LONDON)
    
    def test_last_month_in_january_wraps_year(self):
        result = resolve_range("lastMonth", now=datetime(2025, 1, 10, tzinfo=LONDON), tz=LONDON)
        
        assert result.start.date() == date(2024, 12, 1)
        assert result.end.date() == date(2024, 12, 31)
    
    def test_last7_includes_today_and_six_earlier_days(self):
        result = resolve_range("last7", now=NOW, tz=LONDON)
        
        assert result.start.date() == date(2024, 3, 9)
        assert result.end.date() == date(2024, 3, 15)
    
    def test_last30(self):
        result = resolve_range("last30", now=NOW, tz=LONDON)
        
        assert result.start.date() == date(2024, 2, 15)
        assert result.end.date() == date(2024, 3, 15)
    
    def test_this_month_ends_at_end_of_today(self):
        result = resolve_range("thisMonth", now=NOW, tz=LONDON)
        
        assert result.start.date() == date(2024, 3, 1)
        assert result.end.date() == date(2024, 3, 15)
    
    def test_yesterday_and_last_year(self):
        yesterday = resolve_range("yesterday", now=NOW, tz=LONDON)
        last_year = resolve_range("lastYear", now=NOW, tz=LONDON)
        
        assert yesterday.start.date() == yesterday.end.date() == date(2024, 3, 14)
        assert last_year.start.date() == date(2023, 1, 1)
        assert last_year.end.date() == date(2023, 12, 31)
    
    def test_today_uses_local_date_not_utc(self):
        # 23:30 UTC on 30 June is already 1 July in London (BST)
        late = datetime(2024, 6, 30, 23, 30, tzinfo=timezone.utc)
        
        result = resolve_range("today", now=late, tz=LONDON)
        
        assert result.start.date() == date(2024, 7, 1)
    
    def test_same_clock_same_result(self):
        assert resolve_range("last30", now=NOW, tz=LONDON) == resolve_range("last30", now=NOW, tz=LONDON)
    
    def test_unknown_keyword(self):
        with pytest.raises(InvalidParameter):
            resolve_range("fortnight", now=NOW, tz=LONDON)


class TestExplicitDates:
    """from/to handling"""
    
    def test_explicit_dates_override_keyword(self):
        result = resolve_range("today", "2024-01-01", "2024-01-31", now=NOW, tz=LONDON)
        
        assert result.keyword is None
        assert result.start == datetime(2024, 1, 1, tzinfo=LONDON)
        assert result.end == datetime(2024, 1, 31, 23, 59, 59, 999000, tzinfo=LONDON)
    
    def test_single_bound_leaves_other_side_open(self):
        result = resolve_range(date_from="2024-01-01", tz=LONDON)
        
        assert result.start is not None
        assert result.end is None
    
    def test_unparseable_date(self):
        with pytest.raises(InvalidRange):
            resolve_range(date_from="not-a-date", tz=LONDON)
    
    def test_from_after_to(self):
        with pytest.raises(InvalidRange):
            resolve_range(date_from="2024-02-01", date_to="2024-01-01", tz=LONDON)
    
    def test_utc_conversion_respects_dst(self):
        result = resolve_range(date_from="2024-07-01", date_to="2024-07-01", tz=LONDON)
        start, end = result.as_utc_naive()
        
        assert start == datetime(2024, 6, 30, 23, 0)
        assert end == datetime(2024, 7, 1, 22, 59, 59, 999000)


class TestZones:
    
    def test_unknown_zone(self):
        with pytest.raises(InvalidParameter):
            get_zone("Mars/Olympus_Mons")
    
    def test_default_zone_comes_from_settings(self):
        assert str(get_zone()) == "Europe/London"
