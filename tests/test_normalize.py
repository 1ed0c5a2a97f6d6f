"""Tests for unit normalization and the dashboard models."""

import math

import pytest
from pydantic import ValidationError

from cms_analytics.core.models import DashboardData, PageRow, Stats, TimeseriesPoint
from cms_analytics.core.normalize import (
    epoch_ms_to_iso,
    ga4_date_to_iso,
    metric,
    ms_to_seconds,
    normalize_percentage,
    parse_response,
    percent_change,
    safe_ratio,
    to_number,
    top,
)


class TestPercentChange:
    """Test the change figure attached to every summary metric."""

    def test_increase(self):
        assert percent_change(1200, 1000) == pytest.approx(20)

    def test_decrease(self):
        assert percent_change(45, 50) == pytest.approx(-10)

    def test_no_change(self):
        assert percent_change(3000, 3000) == 0

    def test_zero_previous(self):
        """Division by zero is reported as no change figure, never Infinity."""
        assert percent_change(10, 0) is None

    def test_missing_previous(self):
        assert percent_change(10, None) is None

    def test_nan(self):
        assert percent_change(math.nan, 10) is None

    def test_metric(self):
        point = metric(1200, 1000)

        assert point.value == 1200
        assert point.change == pytest.approx(20)
        assert metric(5).change is None


class TestNormalizePercentage:
    """Test bounce rate and conversion rate normalization."""

    @pytest.mark.parametrize("value, expected", [
        ("45%", 45),
        ("45.5 %", 45.5),
        ("45", 45),
        (45, 45),
        (None, 0),
        ("", 0),
        ("n/a", 0),
    ])
    def test_values(self, value, expected):
        assert normalize_percentage(value) == expected

    def test_fraction(self):
        assert normalize_percentage(0.452, fraction=True) == pytest.approx(45.2)

    def test_fraction_string_is_already_a_percentage(self):
        assert normalize_percentage("45%", fraction=True) == 45


class TestConversions:
    """Test numeric, duration and date conversions."""

    def test_to_number(self):
        assert to_number("12.5") == 12.5
        assert to_number("12.9", integer=True) == 12
        assert to_number("inf") == 0
        assert to_number(object()) == 0

    def test_ms_to_seconds(self):
        assert ms_to_seconds(125000) == 125

    def test_epoch_ms_to_iso(self):
        assert epoch_ms_to_iso(1704067200000) == "2024-01-01T00:00:00+00:00"

    @pytest.mark.parametrize("value, expected", [
        ("20240110", "2024-01-10"),
        ("2024011013", "2024-01-10T13:00:00"),
        ("202401", "2024-01-01"),
        ("2024", "2024-01-01"),
        ("(other)", "(other)"),
    ])
    def test_ga4_date_to_iso(self, value, expected):
        assert ga4_date_to_iso(value) == expected

    @pytest.mark.parametrize("value, expected", [
        ("202402", "2024-01-07"),
        ("202302", "2023-01-08"),
        ("202253", "2022-12-25"),
    ])
    def test_ga4_year_week_starts_on_sunday(self, value, expected):
        assert ga4_date_to_iso(value, grouping="week") == expected

    def test_ga4_first_week_starts_on_new_year(self):
        """2024 opens on a Monday; its first week is cut at January 1st."""
        assert ga4_date_to_iso("202401", grouping="week") == "2024-01-01"

    def test_six_digits_without_week_grouping_is_year_month(self):
        assert ga4_date_to_iso("202402", grouping="month") == "2024-02-01"

    def test_safe_ratio(self):
        assert safe_ratio(1, 4) == 0.25
        assert safe_ratio(1, 0) == 0


class TestTop:
    """Test ranking and clipping of breakdown rows."""

    def test_ranks_descending_and_clips(self):
        rows = [PageRow(page=f"/{i}", pageviews=i) for i in range(15)]

        result = top(rows, key=lambda p: p.pageviews)

        assert len(result) == 10
        assert result[0].page == "/14"
        assert result[-1].page == "/5"

    def test_ties_keep_vendor_order(self):
        rows = [PageRow(page="/a", pageviews=1), PageRow(page="/b", pageviews=1)]

        assert [p.page for p in top(rows, key=lambda p: p.pageviews)] == ["/a", "/b"]


class TestParseResponse:
    """Test vendor payload validation."""

    def test_valid(self):
        assert parse_response(list[int], ["1", 2]) == [1, 2]

    def test_invalid_returns_none(self):
        assert parse_response(PageRow, {"visitors": 3}, label="pages") is None


class TestDashboardData:
    """Test the invariants carried by the dashboard model."""

    def test_timeseries_sorted(self):
        data = DashboardData(
            stats=Stats.zero(),
            timeseries=[TimeseriesPoint(date="2024-01-02"), TimeseriesPoint(date="2024-01-01")],
        )

        assert [p.date for p in data.timeseries] == ["2024-01-01", "2024-01-02"]

    def test_breakdowns_are_capped(self):
        with pytest.raises(ValidationError):
            DashboardData(stats=Stats.zero(), pages=[PageRow(page=f"/{i}") for i in range(11)])

    def test_defaults(self):
        data = DashboardData(stats=Stats.zero())

        assert data.pages == []
        assert data.realtime.visitors == 0

    def test_json_shape(self):
        data = DashboardData(stats=Stats.zero())

        dumped = data.model_dump(mode="json")

        assert set(dumped) == {"stats", "timeseries", "pages", "sources", "events", "realtime"}
        assert dumped["stats"]["bounce_rate"] == {"value": 0, "change": None}
