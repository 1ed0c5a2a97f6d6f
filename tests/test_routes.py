"""Tests for the dashboard API routes."""

from datetime import date

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cms_analytics.config import AnalyticsSettings
from cms_analytics.core.models import ComparisonSpec, DashboardData, MetricPoint, PageRow, Stats
from cms_analytics.providers.base import AnalyticsProvider
from cms_analytics.routes import create_analytics_router

SAMPLE = DashboardData(
    stats=Stats(
        visitors=MetricPoint(value=1200, change=20),
        pageviews=MetricPoint(value=3000, change=0),
        bounce_rate=MetricPoint(value=45, change=-10),
        visit_duration=MetricPoint(value=120),
    ),
    pages=[
        PageRow(page="/", visitors=800, pageviews=2000),
        PageRow(page="/pricing", visitors=150, pageviews=240, bounce_rate=30, visit_duration=95),
    ],
)


class RecordingProvider(AnalyticsProvider):
    """Returns a fixed dashboard and records every call."""
    name = "recording"

    def __init__(self, data=SAMPLE):
        super().__init__()
        self.data = data
        self.calls = []

    @property
    def is_configured(self):
        return True

    async def _build_dashboard(self, period, comparison, grouping):
        self.calls.append((period, comparison, grouping))
        return self.data


def make_client(provider=None, **settings) -> TestClient:
    app = FastAPI()
    router = create_analytics_router(provider or RecordingProvider(), AnalyticsSettings(**settings))
    app.include_router(router, prefix="/api/analytics")
    return TestClient(app)


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def client(provider):
    return make_client(provider)


class TestDashboardRoute:
    """Test GET /dashboard."""

    def test_returns_dashboard(self, client, provider):
        response = client.get("/api/analytics/dashboard")

        assert response.status_code == 200
        body = response.json()
        assert body["stats"]["visitors"] == {"value": 1200, "change": 20}
        assert body["realtime"] == {"visitors": 0}
        assert provider.calls == [("7d", None, None)]

    def test_default_period_from_settings(self, provider):
        client = make_client(provider, time_periods=["7d", "30d"], default_time_period="30d")

        client.get("/api/analytics/dashboard")

        assert provider.calls[0][0] == "30d"

    def test_period_and_grouping(self, client, provider):
        response = client.get("/api/analytics/dashboard", params={"period": "12mo", "grouping": "week"})

        assert response.status_code == 200
        assert provider.calls == [("12mo", None, "week")]

    def test_custom_dates(self, client, provider):
        response = client.get(
            "/api/analytics/dashboard",
            params={"period": "custom", "start": "2024-01-01", "end": "2024-01-31"},
        )

        assert response.status_code == 200
        assert provider.calls[0][0] == "2024-01-01,2024-01-31"

    def test_custom_without_dates_passes_through(self, client, provider):
        client.get("/api/analytics/dashboard", params={"period": "custom", "start": "2024-01-01"})

        assert provider.calls[0][0] == "custom"

    def test_literal_range(self, client, provider):
        client.get("/api/analytics/dashboard", params={"period": "2024-01-01,2024-01-31"})

        assert provider.calls[0][0] == "2024-01-01,2024-01-31"

    def test_end_before_start(self, client, provider):
        response = client.get(
            "/api/analytics/dashboard",
            params={"period": "custom", "start": "2024-02-01", "end": "2024-01-01"},
        )

        assert response.status_code == 400
        assert "on or after" in response.json()["error"]
        assert provider.calls == []

    def test_malformed_literal_range(self, client, provider):
        response = client.get("/api/analytics/dashboard", params={"period": "2024-01-01,soon"})

        assert response.status_code == 400
        assert "Invalid date format" in response.json()["error"]

    def test_malformed_date_parameter(self, client):
        response = client.get(
            "/api/analytics/dashboard",
            params={"period": "custom", "start": "01/02/2024", "end": "2024-01-31"},
        )

        assert response.status_code == 422

    def test_unknown_grouping(self, client, provider):
        response = client.get("/api/analytics/dashboard", params={"grouping": "decade"})

        assert response.status_code == 400
        assert provider.calls == []

    def test_comparison(self, client, provider):
        client.get("/api/analytics/dashboard", params={"comparison": "previousPeriod"})

        assert provider.calls[0][1] == ComparisonSpec(period="previousPeriod")

    def test_custom_comparison(self, client, provider):
        client.get(
            "/api/analytics/dashboard",
            params={"comparison": "custom", "compare_start": "2023-01-01", "compare_end": "2023-01-31"},
        )

        spec = provider.calls[0][1]
        assert spec.period == "custom"
        assert spec.custom_start_date == date(2023, 1, 1)
        assert spec.custom_end_date == date(2023, 1, 31)

    def test_comparison_not_offered(self, provider):
        client = make_client(provider, comparison_options=["previousPeriod"])

        client.get("/api/analytics/dashboard", params={"comparison": "sameLastYear"})

        assert provider.calls[0][1] is None

    def test_comparison_disabled(self, provider):
        client = make_client(provider, enable_comparison=False)

        client.get("/api/analytics/dashboard", params={"comparison": "previousPeriod"})

        assert provider.calls[0][1] is None

    def test_provider_failure(self):
        client = make_client(RecordingProvider(data=None))

        response = client.get("/api/analytics/dashboard")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch analytics data"}


class TestCollectionRoute:
    """Test GET /collection."""

    def test_path_required(self, client, provider):
        response = client.get("/api/analytics/collection")

        assert response.status_code == 400
        assert response.json() == {"error": "Path parameter is required"}
        assert provider.calls == []

    def test_filtered_to_path(self, client, provider):
        response = client.get("/api/analytics/collection", params={"path": "/pricing"})

        assert response.status_code == 200
        body = response.json()
        assert [p["page"] for p in body["pages"]] == ["/pricing"]
        assert body["stats"]["visitors"] == {"value": 150, "change": None}
        assert body["stats"]["bounce_rate"]["value"] == 30
        assert provider.calls[0][0] == "30d"

    def test_unknown_path(self, client):
        body = client.get("/api/analytics/collection", params={"path": "/nope"}).json()

        assert body["pages"] == []
        assert body["stats"]["visitors"]["value"] == 0

    def test_provider_failure(self):
        client = make_client(RecordingProvider(data=None))

        response = client.get("/api/analytics/collection", params={"path": "/"})

        assert response.status_code == 500


class TestConfigRoute:
    """Test GET /config."""

    def test_ui_config(self):
        client = make_client(time_periods=["day", "7d"], comparison_options=["sameLastYear"])

        body = client.get("/api/analytics/config").json()

        assert body["provider"] == "plausible"
        assert body["time_periods"] == [
            {"value": "day", "label": "Today"},
            {"value": "7d", "label": "Last 7 days"},
        ]
        assert body["comparison_options"] == [{"value": "sameLastYear", "label": "Same period last year"}]
        assert body["default_time_period"] == "7d"
