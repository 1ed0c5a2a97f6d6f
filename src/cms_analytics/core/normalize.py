"""
Unit normalization shared by the provider adapters.

Vendors disagree on how they encode the same quantity: bounce rate may be a
``"45%"`` string, a ``0.45`` fraction or already ``45``; durations may be in
milliseconds; dates may be ``"20240110"``. Everything here converts into the
canonical units used by :class:`~cms_analytics.core.models.DashboardData`.
"""
import logging
import math
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, TypeVar

from pydantic import TypeAdapter, ValidationError

from .models import TOP_N, MetricPoint

logger = logging.getLogger(__name__)

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def parse_response(schema: Any, payload: Any, label: str = "response") -> Any | None:
    """Validate a raw vendor payload.

    Returns the parsed object, or None when the payload does not match
    ``schema``. Never raises.
    """
    try:
        return _adapter(schema).validate_python(payload)
    except ValidationError as e:
        logger.error(f"{label} failed validation: {e.error_count()} error(s): {e.errors()[:3]}")
        return None


def to_number(value: Any, integer: bool = False) -> float | int:
    """Parse a numeric value that may arrive as a string. Bad input is 0."""
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number) if integer else number


def normalize_percentage(value: Any, fraction: bool = False) -> float:
    """Percentage on the 0-100 scale.

    ``"45%"`` and ``"45"`` parse to 45. Numbers are taken as already on the
    0-100 scale unless ``fraction`` is set, in which case ``0.45`` becomes 45.
    """
    if isinstance(value, str):
        return to_number(value.strip().rstrip("%").strip())
    number = to_number(value)
    if fraction:
        return round(number * 100, 4)
    return number


def ms_to_seconds(value: Any) -> float:
    return to_number(value) / 1000


def epoch_ms_to_iso(value: int | float) -> str:
    return datetime.fromtimestamp(ms_to_seconds(value), tz=timezone.utc).isoformat()


def ga4_date_to_iso(value: str, grouping: str | None = None) -> str:
    """GA4 date dimensions to ISO.

    ``"20240110"`` (date), ``"2024011013"`` (dateHour), ``"202401"``
    (yearMonth) and ``"2024"`` (year) are recognised; with ``grouping="week"``
    six digits are read as yearWeek instead. Anything else is returned
    unchanged.
    """
    if not value.isdigit():
        return value
    if len(value) == 8:
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    if len(value) == 10:
        return f"{value[:4]}-{value[4:6]}-{value[6:8]}T{value[8:]}:00:00"
    if len(value) == 6 and grouping == "week":
        return ga4_week_start(int(value[:4]), int(value[4:])).isoformat()
    if len(value) == 6:
        return f"{value[:4]}-{value[4:]}-01"
    if len(value) == 4:
        return f"{value}-01-01"
    return value


def ga4_week_start(year: int, week: int) -> date:
    """First day of a GA4 week.

    GA4 weeks start on Sunday and week 01 always holds January 1st, so the
    first week of a year is cut short at January 1st.
    """
    jan_first = date(year, 1, 1)
    first_sunday = jan_first - timedelta(days=(jan_first.weekday() + 1) % 7)
    return max(jan_first, first_sunday + timedelta(weeks=week - 1))


def safe_ratio(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0
    return numerator / denominator


def percent_change(current: float, previous: float | None) -> float | None:
    """Signed percentage change, or None if there is no usable previous value."""
    if previous is None or previous == 0:
        return None
    change = (current - previous) / previous * 100
    if math.isnan(change) or math.isinf(change):
        return None
    return change


def metric(current: float, previous: float | None = None) -> MetricPoint:
    """Create a MetricPoint with percentage change."""
    return MetricPoint(value=current, change=percent_change(current, previous))


def top(rows: Iterable[T], key: Callable[[T], float], limit: int = TOP_N) -> list[T]:
    """Rank rows by ``key`` descending and keep the first ``limit``.

    The sort is stable, so ties keep the vendor's order.
    """
    return sorted(rows, key=key, reverse=True)[:limit]
