"""Tests for the Umami adapter."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from cms_analytics.core.models import DashboardData
from cms_analytics.core.periods import PERIODS, epoch_ms
from cms_analytics.providers import UmamiProvider
from cms_analytics.providers.base import ProviderRequestError


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


STATS = {
    "pageviews": {"value": 500, "change": 10},
    "visitors": {"value": 100, "change": 5},
    "visits": {"value": 200, "change": 8},
    "bounces": {"value": 50, "change": 2},
    "totaltime": {"value": 24000, "change": 100},
}

# Newer servers return bare numbers
PREVIOUS_STATS = {
    "pageviews": 400,
    "visitors": 80,
    "visits": 100,
    "bounces": 50,
    "totaltime": 12000,
}

PAGEVIEWS = {
    "pageviews": [
        {"x": "2024-01-02 00:00:00", "y": 12},
        {"x": "2024-01-01 00:00:00", "y": 10},
    ],
    "sessions": [
        {"x": "2024-01-01 00:00:00", "y": 4},
        {"x": "2024-01-02 00:00:00", "y": 6},
    ],
}

METRICS = {
    "url": [{"x": "/", "y": 30}, {"x": "/blog", "y": 50}],
    "referrer": [{"x": "", "y": 20}, {"x": "google.com", "y": 10}],
    "event": [{"x": "signup", "y": 5}],
}


def make_dispatch(fail: tuple[str, ...] = ()):
    """Fake Umami API; comparison stats are recognised by an older startAt."""
    threshold = epoch_ms(datetime.now(timezone.utc) - timedelta(days=10))

    def dispatch(method, url, params=None, json=None, headers=None):
        endpoint = url.rsplit("/", 1)[-1]
        if endpoint == "stats":
            key = "previous" if params["startAt"] < threshold else "stats"
            if key in fail:
                raise ProviderRequestError("boom", status_code=500)
            return PREVIOUS_STATS if key == "previous" else STATS
        if endpoint == "pageviews":
            if "timeseries" in fail:
                raise ProviderRequestError("boom", status_code=500)
            return PAGEVIEWS
        if endpoint == "metrics":
            if params["type"] in fail:
                raise ProviderRequestError("boom", status_code=500)
            return METRICS[params["type"]]
        raise AssertionError(f"unexpected url {url}")

    return dispatch


def make_provider(dispatch=None) -> UmamiProvider:
    provider = UmamiProvider({"api_key": "test-key", "site_id": "site-uuid"})
    provider._request = AsyncMock(side_effect=dispatch or make_dispatch())
    return provider


class TestUmamiDashboard:
    """Test get_dashboard_data against a faked API."""

    def test_summary_values(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert data.stats.visitors.value == 100
        assert data.stats.pageviews.value == 500
        assert data.stats.bounce_rate.value == 25
        assert data.stats.visit_duration.value == 120

    def test_vendor_change_is_ignored_without_comparison(self):
        """Umami's own change figures are not passed through."""
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert data.stats.visitors.change is None

    def test_comparison_uses_second_stats_call(self):
        data = run_async(make_provider().get_dashboard_data("7d", {"period": "previousPeriod"}))

        assert data.stats.visitors.change == pytest.approx(25)
        assert data.stats.pageviews.change == pytest.approx(25)
        assert data.stats.bounce_rate.change == pytest.approx(-50)
        assert data.stats.visit_duration.change == pytest.approx(0)

    def test_site_wide_rates_applied_to_rows(self):
        """Every page and source row carries the site-wide bounce rate and duration."""
        data = run_async(make_provider().get_dashboard_data("7d"))

        for row in [*data.pages, *data.sources]:
            assert row.bounce_rate == 25
            assert row.visit_duration == 120

    def test_pages_ranked(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert [p.page for p in data.pages] == ["/blog", "/"]

    def test_empty_referrer_is_direct(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert data.sources[0].source == "Direct"
        assert data.sources[0].visitors == 20

    def test_event_conversion_rate(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert data.events[0].goal == "signup"
        assert data.events[0].conversion_rate == pytest.approx(5)

    def test_timeseries_joins_sessions_by_bucket(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert [p.date for p in data.timeseries] == ["2024-01-01T00:00:00", "2024-01-02T00:00:00"]
        assert [p.visitors for p in data.timeseries] == [4, 6]
        assert [p.pageviews for p in data.timeseries] == [10, 12]

    def test_epoch_timeseries_buckets(self):
        dispatch = make_dispatch()

        def with_epoch(method, url, params=None, **kw):
            if url.endswith("/pageviews"):
                return {"pageviews": [{"x": 1704067200000, "y": 3}], "sessions": [{"x": 1704067200000, "y": 2}]}
            return dispatch(method, url, params=params, **kw)

        data = run_async(make_provider(with_epoch).get_dashboard_data("7d"))

        assert data.timeseries[0].date == "2024-01-01T00:00:00+00:00"
        assert data.timeseries[0].visitors == 2

    def test_realtime_always_zero(self):
        data = run_async(make_provider().get_dashboard_data("7d"))

        assert data.realtime.visitors == 0

    def test_events_failure_is_partial(self):
        data = run_async(make_provider(make_dispatch(fail=("event",))).get_dashboard_data("7d"))

        assert data.events == []
        assert len(data.pages) == 2
        assert len(data.timeseries) == 2

    def test_stats_failure_returns_none(self):
        provider = make_provider(make_dispatch(fail=("stats",)))

        assert run_async(provider.get_dashboard_data("7d")) is None

    def test_zero_visits_gives_zero_rates(self):
        dispatch = make_dispatch()

        def empty_stats(method, url, params=None, **kw):
            if url.endswith("/stats"):
                return {"pageviews": 0, "visitors": 0, "visits": 0, "bounces": 0, "totaltime": 0}
            return dispatch(method, url, params=params, **kw)

        data = run_async(make_provider(empty_stats).get_dashboard_data("7d"))

        assert data.stats.bounce_rate.value == 0
        assert data.stats.visit_duration.value == 0
        assert data.events[0].conversion_rate == 0

    def test_request_parameters(self):
        provider = make_provider()

        run_async(provider.get_dashboard_data("day"))

        calls = {c.args[1].rsplit("/", 1)[-1]: c.kwargs for c in provider._request.call_args_list}
        pageviews = calls["pageviews"]
        assert pageviews["params"]["unit"] == "hour"
        span = pageviews["params"]["endAt"] - pageviews["params"]["startAt"]
        assert abs(span - 24 * 60 * 60 * 1000) <= 1
        assert pageviews["headers"]["Authorization"] == "Bearer test-key"
        assert provider._request.call_args_list[0].args[1].startswith(
            "https://api.umami.is/api/websites/site-uuid/"
        )

    @pytest.mark.parametrize("period", PERIODS)
    def test_every_period_token(self, period):
        data = run_async(make_provider().get_dashboard_data(period))

        assert isinstance(data, DashboardData)


class TestUmamiConfiguration:
    """Test credential handling."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for name in ("UMAMI_API_KEY", "UMAMI_SITE_ID", "UMAMI_API_HOST"):
            monkeypatch.delenv(name, raising=False)

    def test_missing_site_id_makes_no_request(self):
        provider = UmamiProvider({"api_key": "key"})
        provider._request = AsyncMock()

        assert run_async(provider.get_dashboard_data("7d")) is None
        provider._request.assert_not_called()

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("UMAMI_API_KEY", "env-key")
        monkeypatch.setenv("UMAMI_SITE_ID", "env-site")
        monkeypatch.setenv("UMAMI_API_HOST", "https://umami.example.com/")

        provider = UmamiProvider()

        assert provider.is_configured
        assert provider.config.api_host == "https://umami.example.com"
