"""
Period resolution.

Turns a period token (``7d``, ``lastMonth``...) or a literal
``"YYYY-MM-DD,YYYY-MM-DD"`` range into concrete date windows, derives the
comparison window, and translates both into each vendor's native parameters.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from .models import ComparisonSpec, DateRange

PERIODS = (
    "day",
    "7d",
    "14d",
    "30d",
    "lastMonth",
    "thisMonth",
    "month",
    "6mo",
    "12mo",
    "year",
    "lastYear",
    "thisYear",
    "all",
    "custom",
)

DEFAULT_PERIOD = "7d"
GROUPINGS = ("hour", "day", "week", "month", "year")

# Start of "all time" for providers without a native token
ALL_TIME_START = date(2020, 1, 1)

# Rolling windows ending today
ROLLING_DAYS = {
    "7d": 7,
    "14d": 14,
    "30d": 30,
    "year": 365,
}

# Tokens whose natural bucket is a month rather than a day
_MONTHLY_PERIODS = {"6mo", "12mo", "year", "lastYear", "thisYear", "all"}

# Token translation tables; tokens not listed pass through unchanged
PROVIDER_PERIOD_MAPPINGS: dict[str, dict[str, str]] = {
    "plausible": {
        "day": "day",
        "7d": "7d",
        "30d": "30d",
        "month": "month",
        "thisMonth": "month",
        "6mo": "6mo",
        "12mo": "12mo",
    },
    "umami": {
        "day": "24h",
        "7d": "7d",
        "14d": "14d",
        "30d": "30d",
        "lastMonth": "1m",
        "thisMonth": "1m",
        "12mo": "12m",
    },
    "matomo": {
        "day": "day",
        "month": "month",
        "thisMonth": "month",
        "lastMonth": "month",
        "thisYear": "year",
        "lastYear": "year",
    },
    "posthog": {
        "day": "day",
        "7d": "7d",
        "14d": "14d",
        "30d": "30d",
        "lastMonth": "month",
        "thisMonth": "month",
        "12mo": "12mo",
    },
    "google-analytics": {
        "day": "today",
        "7d": "7daysAgo",
        "14d": "14daysAgo",
        "30d": "30daysAgo",
        "12mo": "365daysAgo",
    },
}


class InvalidPeriodError(ValueError):
    """Raised when a literal custom range cannot be parsed."""
    pass


def map_time_period_to_provider(period: str, provider: str) -> str:
    """Map a period token to a provider's vocabulary, passing unknowns through."""
    mappings = PROVIDER_PERIOD_MAPPINGS.get(provider)
    if not mappings:
        return period
    return mappings.get(period, period)


def is_custom_range(period: str) -> bool:
    return "," in period


def parse_custom_range(period: str) -> DateRange:
    """Parse ``"YYYY-MM-DD,YYYY-MM-DD"``.

    Raises:
        InvalidPeriodError: If either date is malformed or end precedes start
    """
    parts = [p.strip() for p in period.split(",")]
    if len(parts) != 2:
        raise InvalidPeriodError(f"Expected 'start,end' date pair, got {period!r}")
    try:
        start = date.fromisoformat(parts[0])
        end = date.fromisoformat(parts[1])
    except ValueError:
        raise InvalidPeriodError(
            f"Invalid date format in {period!r}. Use YYYY-MM-DD (e.g., 2024-01-15)"
        ) from None
    if end < start:
        raise InvalidPeriodError("End date must be on or after start date")
    return DateRange(start=start, end=end)


# =============================================================================
# CALENDAR MATH
# =============================================================================

def shift_months(day: date, months: int) -> date:
    """Move by whole months, clamping to the last day of the target month."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def shift_years(day: date, years: int) -> date:
    return shift_months(day, years * 12)


def _month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return first, last


def resolve_date_range(period: str, today: date | None = None) -> DateRange:
    """Concrete date window for a period token or literal range.

    Unknown tokens, including a bare ``custom`` without dates, fall back to
    the default seven day window.
    """
    today = today or date.today()

    if is_custom_range(period):
        return parse_custom_range(period)

    if period in ROLLING_DAYS:
        return DateRange(start=today - timedelta(days=ROLLING_DAYS[period]), end=today)

    if period == "day":
        return DateRange(start=today, end=today)
    if period in ("thisMonth", "month"):
        return DateRange(start=today.replace(day=1), end=today)
    if period == "lastMonth":
        start, end = _month_bounds(shift_months(today.replace(day=1), -1))
        return DateRange(start=start, end=end)
    if period == "6mo":
        return DateRange(start=shift_months(today, -6), end=today)
    if period == "12mo":
        return DateRange(start=shift_months(today, -12), end=today)
    if period == "thisYear":
        return DateRange(start=date(today.year, 1, 1), end=today)
    if period == "lastYear":
        return DateRange(start=date(today.year - 1, 1, 1), end=date(today.year - 1, 12, 31))
    if period == "all":
        return DateRange(start=ALL_TIME_START, end=today)

    return DateRange(start=today - timedelta(days=ROLLING_DAYS[DEFAULT_PERIOD]), end=today)


def comparison_range(current: DateRange, comparison: ComparisonSpec | None) -> DateRange | None:
    """Window to diff ``current`` against, or None when there is nothing to compare.

    previousPeriod is the same number of days immediately before ``current``;
    sameLastYear is ``current`` shifted back one year; custom needs both dates.
    """
    if comparison is None:
        return None

    if comparison.period == "previousPeriod":
        end = current.start - timedelta(days=1)
        return DateRange(start=end - timedelta(days=current.days - 1), end=end)

    if comparison.period == "sameLastYear":
        return DateRange(start=shift_years(current.start, -1), end=shift_years(current.end, -1))

    if comparison.custom_start_date and comparison.custom_end_date:
        return DateRange(start=comparison.custom_start_date, end=comparison.custom_end_date)
    return None


def default_grouping(period: str) -> str:
    """Natural time-series bucket for a period."""
    if period == "day":
        return "hour"
    if period in _MONTHLY_PERIODS:
        return "month"
    if is_custom_range(period):
        try:
            span = parse_custom_range(period).days
        except InvalidPeriodError:
            return "day"
        if span <= 1:
            return "hour"
        return "month" if span > 90 else "day"
    return "day"


# =============================================================================
# INSTANT RANGES (providers that query by timestamp)
# =============================================================================

def resolve_instant_range(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start/end instants in UTC.

    Rolling tokens count back from ``now`` exactly (``day`` is the last 24
    hours); calendar tokens run from midnight of their first day to the end
    of their last day, capped at ``now``.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if period == "day":
        return now - timedelta(days=1), now
    if period in ROLLING_DAYS:
        return now - timedelta(days=ROLLING_DAYS[period]), now

    rng = resolve_date_range(period, today=now.date())
    start = datetime.combine(rng.start, time.min, tzinfo=timezone.utc)
    end = min(datetime.combine(rng.end, time.max, tzinfo=timezone.utc), now)
    return start, end


def comparison_instants(
    start: datetime,
    end: datetime,
    comparison: ComparisonSpec | None,
) -> tuple[datetime, datetime] | None:
    """Instant-based counterpart of :func:`comparison_range`."""
    if comparison is None:
        return None

    if comparison.period == "previousPeriod":
        return start - (end - start), start

    if comparison.period == "sameLastYear":
        return (
            start.replace(year=start.year - 1, day=shift_years(start.date(), -1).day),
            end.replace(year=end.year - 1, day=shift_years(end.date(), -1).day),
        )

    if comparison.custom_start_date and comparison.custom_end_date:
        return (
            datetime.combine(comparison.custom_start_date, time.min, tzinfo=timezone.utc),
            datetime.combine(comparison.custom_end_date, time.max, tzinfo=timezone.utc),
        )
    return None


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


# =============================================================================
# PROVIDER-NATIVE PERIODS
# =============================================================================

@dataclass(frozen=True)
class PlausiblePeriod:
    """``period`` plus the ``date`` pair when period is custom."""
    period: str
    date: str | None = None

    def params(self) -> dict[str, str]:
        if self.date is None:
            return {"period": self.period}
        return {"period": self.period, "date": self.date}


def plausible_period(period: str, today: date | None = None) -> PlausiblePeriod:
    native = PROVIDER_PERIOD_MAPPINGS["plausible"].get(period)
    if native is not None:
        return PlausiblePeriod(period=native)
    return plausible_custom_period(resolve_date_range(period, today))


def plausible_custom_period(rng: DateRange) -> PlausiblePeriod:
    return PlausiblePeriod(period="custom", date=rng.as_param())


@dataclass(frozen=True)
class MatomoPeriod:
    """``{period, date}`` pair plus the calendar window it covers."""
    period: str
    date: str
    window: DateRange

    def params(self) -> dict[str, str]:
        return {"period": self.period, "date": self.date}


def matomo_period(period: str, today: date | None = None) -> MatomoPeriod:
    """Matomo ``{period, date}`` pair.

    Windows that line up with a Matomo calendar period use it directly;
    everything else becomes an explicit ``range``. Either way ``window`` is
    the same calendar window ``resolve_date_range`` gives, so a comparison
    derived from it stays aligned with what Matomo reports.
    """
    today = today or date.today()
    window = resolve_date_range(period, today)
    native = PROVIDER_PERIOD_MAPPINGS["matomo"].get(period)

    if native == "day":
        return MatomoPeriod("day", "today", window)
    if period in ("lastMonth", "lastYear"):
        return MatomoPeriod(native, window.start.isoformat(), window)
    if native is not None:
        return MatomoPeriod(native, "today", window)

    return matomo_range_period(window)


def matomo_range_period(rng: DateRange) -> MatomoPeriod:
    return MatomoPeriod("range", rng.as_param(), rng)


def ga4_date_range(rng: DateRange, name: str | None = None) -> dict[str, str]:
    """GA4 ``DateRange`` object; explicit dates keep both ranges comparable."""
    body = {"startDate": rng.start.isoformat(), "endDate": rng.end.isoformat()}
    if name:
        body["name"] = name
    return body
