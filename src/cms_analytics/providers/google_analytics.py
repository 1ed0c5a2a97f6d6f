"""
Google Analytics 4 Data API adapter.

Reports are ``runReport`` POSTs authenticated with an API key in the query
string. When a comparison is requested the summary report carries both date
ranges, named ``current`` and ``previous``, so one request returns both
rows. Metric values arrive as strings; bounce rate is a 0-1 fraction.
"""
import logging
from dataclasses import dataclass, field, replace

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..core.models import (
    TOP_N,
    ComparisonSpec,
    DashboardData,
    EventRow,
    PageRow,
    Realtime,
    SourceRow,
    Stats,
    TimeseriesPoint,
)
from ..core.normalize import ga4_date_to_iso, metric, normalize_percentage, safe_ratio, to_number, top
from ..core.periods import comparison_range, default_grouping, ga4_date_range, resolve_date_range
from .base import DEFAULT_TIMEOUT, AnalyticsProvider, ProviderConfig, env, gather_settled

logger = logging.getLogger(__name__)

GA4_DEFAULT_HOST = "https://analyticsdata.googleapis.com"

SUMMARY_METRICS = ["activeUsers", "screenPageViews", "bounceRate", "averageSessionDuration"]

# Used when a response omits metricHeaders
INTEGER_METRICS = {"activeUsers", "totalUsers", "screenPageViews", "eventCount", "sessions"}

TIMESERIES_DIMENSIONS = {
    "hour": "dateHour",
    "day": "date",
    "week": "yearWeek",
    "month": "yearMonth",
    "year": "year",
}

# Sessions without a referrer
DIRECT_SOURCES = {"(direct)", "(not set)", ""}

EXCLUDED_EVENT = "page_view"


@dataclass
class GoogleAnalyticsConfig(ProviderConfig):
    property_id: str | None = None
    api_key: str | None = None
    api_host: str = GA4_DEFAULT_HOST
    timeout: float = DEFAULT_TIMEOUT

    def resolve(self) -> "GoogleAnalyticsConfig":
        return replace(
            self,
            property_id=self.property_id or env("GA4_PROPERTY_ID"),
            api_key=self.api_key or env("GA4_API_KEY"),
            api_host=(self.api_host or GA4_DEFAULT_HOST).rstrip("/"),
        )


# =============================================================================
# Response Models
# =============================================================================

class GA4Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GA4Header(GA4Model):
    name: str
    type: str | None = None


class GA4Value(GA4Model):
    value: str = ""


class GA4Row(GA4Model):
    dimension_values: list[GA4Value] = []
    metric_values: list[GA4Value] = []


@dataclass
class GA4Record:
    """One report row with its metric values parsed to numbers."""
    dimensions: list[str] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)

    def get(self, name: str) -> float:
        return self.metrics.get(name, 0)


class GA4Report(GA4Model):
    dimension_headers: list[GA4Header] = []
    metric_headers: list[GA4Header] = []
    rows: list[GA4Row] = []
    row_count: int | None = None

    def records(self, metric_names: list[str]) -> list[GA4Record]:
        """Rows as records, typing each value by its metric header."""
        headers = self.metric_headers or [GA4Header(name=name) for name in metric_names]

        records = []
        for row in self.rows:
            metrics = {}
            for header, value in zip(headers, row.metric_values):
                if header.type:
                    integer = header.type == "TYPE_INTEGER"
                else:
                    integer = header.name in INTEGER_METRICS
                metrics[header.name] = to_number(value.value, integer=integer)
            records.append(GA4Record(
                dimensions=[v.value for v in row.dimension_values],
                metrics=metrics,
            ))
        return records


def _metrics(*names: str) -> list[dict[str, str]]:
    return [{"name": name} for name in names]


# =============================================================================
# Provider
# =============================================================================

class GoogleAnalyticsProvider(AnalyticsProvider):
    name = "google-analytics"
    config_class = GoogleAnalyticsConfig

    @property
    def is_configured(self) -> bool:
        return bool(self.config.property_id and self.config.api_key)

    async def _report(self, label: str, body: dict, method: str = "runReport") -> GA4Report | None:
        return await self._fetch(
            label,
            GA4Report,
            "POST",
            f"{self.config.api_host}/v1beta/properties/{self.config.property_id}:{method}",
            params={"key": self.config.api_key},
            json=body,
            headers={"Content-Type": "application/json"},
        )

    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        current = resolve_date_range(period)
        previous = comparison_range(current, comparison)
        date_ranges = [ga4_date_range(current)]

        summary_ranges = [ga4_date_range(current, "current")]
        if previous is not None:
            summary_ranges.append(ga4_date_range(previous, "previous"))

        bucket = grouping or default_grouping(period)
        dimension = TIMESERIES_DIMENSIONS.get(bucket, "date")

        queries = {
            "stats": self._report("summary", {
                "dateRanges": summary_ranges,
                "metrics": _metrics(*SUMMARY_METRICS),
            }),
            "timeseries": self._report("timeseries", {
                "dateRanges": date_ranges,
                "dimensions": [{"name": dimension}],
                "metrics": _metrics("activeUsers", "screenPageViews"),
                "orderBys": [{"dimension": {"dimensionName": dimension}}],
            }),
            "pages": self._report("pages", {
                "dateRanges": date_ranges,
                "dimensions": [{"name": "pagePath"}],
                "metrics": _metrics(*SUMMARY_METRICS),
                "limit": TOP_N,
                "orderBys": [{"metric": {"metricName": "screenPageViews"}, "desc": True}],
            }),
            "sources": self._report("sources", {
                "dateRanges": date_ranges,
                "dimensions": [{"name": "sessionSource"}],
                "metrics": _metrics("activeUsers", "bounceRate", "averageSessionDuration"),
                "limit": TOP_N,
                "orderBys": [{"metric": {"metricName": "activeUsers"}, "desc": True}],
            }),
            "events": self._report("events", {
                "dateRanges": date_ranges,
                "dimensions": [{"name": "eventName"}],
                "metrics": _metrics("eventCount", "activeUsers"),
                "limit": TOP_N,
                "orderBys": [{"metric": {"metricName": "eventCount"}, "desc": True}],
                "dimensionFilter": {
                    "notExpression": {
                        "filter": {
                            "fieldName": "eventName",
                            "stringFilter": {
                                "matchType": "EXACT",
                                "value": EXCLUDED_EVENT,
                                "caseSensitive": False,
                            },
                        },
                    },
                },
            }),
            "realtime": self._report(
                "realtime",
                {"metrics": _metrics("activeUsers")},
                method="runRealtimeReport",
            ),
        }

        data = await gather_settled(queries, label=self.name)

        summary = data["stats"]
        if summary is None:
            return None

        current_row, previous_row = self._summary_rows(summary, with_previous=previous is not None)
        visitors = current_row.get("activeUsers")

        return DashboardData(
            stats=self._stats(current_row, previous_row),
            timeseries=self._timeseries(data["timeseries"], bucket),
            pages=top(self._pages(data["pages"]), key=lambda p: p.pageviews),
            sources=top(self._sources(data["sources"]), key=lambda s: s.visitors),
            events=top(self._events(data["events"], visitors), key=lambda e: e.visitors),
            realtime=Realtime(visitors=self._realtime(data["realtime"])),
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _summary_rows(self, report: GA4Report, with_previous: bool) -> tuple[GA4Record, GA4Record | None]:
        """Current and previous summary rows.

        Rows are matched by the ``dateRange`` dimension GA4 adds when several
        ranges are requested, falling back to row order. GA4 omits all-zero
        rows, so a missing row reads as zeros.
        """
        records = report.records(SUMMARY_METRICS)
        if not with_previous:
            return (records[0] if records else GA4Record()), None

        by_range = {r.dimensions[0]: r for r in records if r.dimensions}
        if "current" in by_range or "previous" in by_range:
            return by_range.get("current", GA4Record()), by_range.get("previous", GA4Record())

        current = records[0] if records else GA4Record()
        previous = records[1] if len(records) > 1 else GA4Record()
        return current, previous

    def _stats(self, current: GA4Record, previous: GA4Record | None) -> Stats:
        def values(record: GA4Record) -> tuple[float, float, float, float]:
            return (
                record.get("activeUsers"),
                record.get("screenPageViews"),
                normalize_percentage(record.get("bounceRate"), fraction=True),
                record.get("averageSessionDuration"),
            )

        visitors, pageviews, bounce_rate, duration = values(current)
        if previous is None:
            return Stats(
                visitors=metric(visitors),
                pageviews=metric(pageviews),
                bounce_rate=metric(bounce_rate),
                visit_duration=metric(duration),
            )

        prev_visitors, prev_pageviews, prev_bounce_rate, prev_duration = values(previous)
        return Stats(
            visitors=metric(visitors, prev_visitors),
            pageviews=metric(pageviews, prev_pageviews),
            bounce_rate=metric(bounce_rate, prev_bounce_rate),
            visit_duration=metric(duration, prev_duration),
        )

    def _timeseries(self, report: GA4Report | None, grouping: str) -> list[TimeseriesPoint]:
        if report is None:
            return []
        return [
            TimeseriesPoint(
                date=ga4_date_to_iso(record.dimensions[0] if record.dimensions else "", grouping),
                visitors=int(record.get("activeUsers")),
                pageviews=int(record.get("screenPageViews")),
            )
            for record in report.records(["activeUsers", "screenPageViews"])
        ]

    def _pages(self, report: GA4Report | None) -> list[PageRow]:
        if report is None:
            return []
        return [
            PageRow(
                page=(record.dimensions[0] if record.dimensions else "") or "/",
                visitors=int(record.get("activeUsers")),
                pageviews=int(record.get("screenPageViews")),
                bounce_rate=normalize_percentage(record.get("bounceRate"), fraction=True),
                visit_duration=record.get("averageSessionDuration"),
            )
            for record in report.records(SUMMARY_METRICS)
        ]

    def _sources(self, report: GA4Report | None) -> list[SourceRow]:
        if report is None:
            return []

        rows = []
        for record in report.records(["activeUsers", "bounceRate", "averageSessionDuration"]):
            label = record.dimensions[0] if record.dimensions else ""
            rows.append(SourceRow(
                source="Direct" if label in DIRECT_SOURCES else label,
                visitors=int(record.get("activeUsers")),
                bounce_rate=normalize_percentage(record.get("bounceRate"), fraction=True),
                visit_duration=record.get("averageSessionDuration"),
            ))
        return rows

    def _events(self, report: GA4Report | None, total_visitors: float) -> list[EventRow]:
        if report is None:
            return []

        rows = []
        for record in report.records(["eventCount", "activeUsers"]):
            name = record.dimensions[0] if record.dimensions else ""
            # The filter is applied server-side; page_view is also counted as pageviews
            if not name or name.lower() == EXCLUDED_EVENT:
                continue
            users = record.get("activeUsers")
            rows.append(EventRow(
                goal=name,
                visitors=int(users),
                events=int(record.get("eventCount")),
                conversion_rate=safe_ratio(users, total_visitors) * 100,
            ))
        return rows

    def _realtime(self, report: GA4Report | None) -> int:
        if report is None:
            return 0
        records = report.records(["activeUsers"])
        if not records:
            return 0
        return int(records[0].get("activeUsers"))
