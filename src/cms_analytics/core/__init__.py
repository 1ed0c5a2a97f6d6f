"""
Core models, period resolution and unit normalization shared by all providers.
"""

from .models import (
    ComparisonSpec,
    DashboardData,
    DateRange,
    EventRow,
    MetricPoint,
    PageRow,
    Realtime,
    SourceRow,
    Stats,
    TimeseriesPoint,
)
from .normalize import normalize_percentage, parse_response, percent_change
from .periods import (
    DEFAULT_PERIOD,
    PERIODS,
    InvalidPeriodError,
    comparison_range,
    resolve_date_range,
)

__all__ = [
    "DEFAULT_PERIOD",
    "PERIODS",
    "ComparisonSpec",
    "DashboardData",
    "DateRange",
    "EventRow",
    "InvalidPeriodError",
    "MetricPoint",
    "PageRow",
    "Realtime",
    "SourceRow",
    "Stats",
    "TimeseriesPoint",
    "comparison_range",
    "normalize_percentage",
    "parse_response",
    "percent_change",
    "resolve_date_range",
]
