"""
Analytics Module
"""
from .ranges import DateRange, resolve_range
from .timeseries import revenue_overview, revenue_series
from .dashboard import compose_dashboard

__all__ = [
    "DateRange",
    "resolve_range",
    "revenue_overview",
    "revenue_series",
    "compose_dashboard",
]
