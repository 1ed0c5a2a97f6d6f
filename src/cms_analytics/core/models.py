"""
Pydantic models for normalized dashboard data.

Every provider adapter produces these shapes, whatever its vendor returns.
"""
from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Breakdowns are clipped to this many rows
TOP_N = 10


# =============================================================================
# Request Models
# =============================================================================

class DateRange(BaseModel):
    """Inclusive calendar date range."""
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @property
    def days(self) -> int:
        """Number of calendar days covered, both ends included."""
        return (self.end - self.start).days + 1

    def as_param(self) -> str:
        return f"{self.start.isoformat()},{self.end.isoformat()}"


class ComparisonSpec(BaseModel):
    """Which window to diff the primary period against."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    period: Literal["previousPeriod", "sameLastYear", "custom"]
    custom_start_date: date | None = Field(default=None, alias="customStartDate")
    custom_end_date: date | None = Field(default=None, alias="customEndDate")


# =============================================================================
# Dashboard Response Models
# =============================================================================

class MetricPoint(BaseModel):
    """A summary metric with its change from the comparison period."""
    model_config = ConfigDict(frozen=True)

    value: float
    change: float | None = None  # signed percentage, None without a usable comparison


class Stats(BaseModel):
    model_config = ConfigDict(frozen=True)

    visitors: MetricPoint
    pageviews: MetricPoint
    bounce_rate: MetricPoint  # 0-100
    visit_duration: MetricPoint  # seconds

    @classmethod
    def zero(cls) -> "Stats":
        return cls(
            visitors=MetricPoint(value=0),
            pageviews=MetricPoint(value=0),
            bounce_rate=MetricPoint(value=0),
            visit_duration=MetricPoint(value=0),
        )


class TimeseriesPoint(BaseModel):
    """One time bucket (hour, day, week, month or year)."""
    model_config = ConfigDict(frozen=True)

    date: str  # ISO 8601
    visitors: int = 0
    pageviews: int | None = None
    bounce_rate: float | None = None
    visit_duration: float | None = None


class PageRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: str
    visitors: int = 0
    pageviews: int = 0
    bounce_rate: float = 0
    visit_duration: float = 0


class SourceRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    visitors: int = 0
    bounce_rate: float = 0
    visit_duration: float = 0


class EventRow(BaseModel):
    """A goal or custom event; conversion_rate is a share of all visitors."""
    model_config = ConfigDict(frozen=True)

    goal: str
    visitors: int = 0
    events: int = 0
    conversion_rate: float = 0


class Realtime(BaseModel):
    model_config = ConfigDict(frozen=True)

    visitors: int = 0  # 0 when the provider has no realtime capability


class DashboardData(BaseModel):
    """Complete dashboard response, built fresh for every call."""
    model_config = ConfigDict(frozen=True)

    stats: Stats
    timeseries: list[TimeseriesPoint] = Field(default_factory=list)
    pages: list[PageRow] = Field(default_factory=list, max_length=TOP_N)
    sources: list[SourceRow] = Field(default_factory=list, max_length=TOP_N)
    events: list[EventRow] = Field(default_factory=list, max_length=TOP_N)
    realtime: Realtime = Field(default_factory=Realtime)

    @field_validator("timeseries")
    @classmethod
    def _chronological(cls, points: list[TimeseriesPoint]) -> list[TimeseriesPoint]:
        return sorted(points, key=lambda p: p.date)
