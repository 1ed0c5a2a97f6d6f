"""
Plausible Stats API (v1) adapter.

Plausible has native tokens for most periods; the rest are sent as
``period=custom&date=start,end``. Realtime comes from the dedicated
``realtime/visitors`` endpoint, which returns a bare number of visitors
active in the last five minutes.

The v1 timeseries only buckets by ``date`` or ``month``: a ``week`` grouping
is served as daily points and ``year`` as monthly ones. Hourly points come
only from ``period=day``; asking for ``hour`` on any longer period falls
back to daily points.

Comparison is a second aggregate over the explicit comparison window rather
than Plausible's own ``compare=previous_period`` figure, which arrives
already rounded to a whole percent.
"""
import logging
from dataclasses import dataclass, replace

from pydantic import BaseModel

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
from ..core.normalize import metric, normalize_percentage, top
from ..core.periods import (
    comparison_range,
    default_grouping,
    plausible_custom_period,
    plausible_period,
    resolve_date_range,
)
from .base import DEFAULT_TIMEOUT, AnalyticsProvider, ProviderConfig, env, gather_settled

logger = logging.getLogger(__name__)

PLAUSIBLE_DEFAULT_HOST = "https://plausible.io"

AGGREGATE_METRICS = "visitors,pageviews,bounce_rate,visit_duration"
PAGE_METRICS = "visitors,pageviews,bounce_rate,visit_duration"
SOURCE_METRICS = "visitors,bounce_rate,visit_duration"
GOAL_METRICS = "visitors,events,conversion_rate"

# Hourly buckets are implied by period=day, so "hour" sends no interval
TIMESERIES_INTERVALS = {
    "day": "date",
    "week": "date",
    "month": "month",
    "year": "month",
}


@dataclass
class PlausibleConfig(ProviderConfig):
    api_key: str | None = None
    site_id: str | None = None  # the site's domain
    api_host: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def resolve(self) -> "PlausibleConfig":
        host = (
            self.api_host
            or env("PLAUSIBLE_API_HOST", "NEXT_PUBLIC_PLAUSIBLE_HOST")
            or PLAUSIBLE_DEFAULT_HOST
        )
        return replace(
            self,
            api_key=self.api_key or env("PLAUSIBLE_API_KEY"),
            site_id=self.site_id or env("PLAUSIBLE_SITE_ID", "NEXT_PUBLIC_PLAUSIBLE_DOMAIN"),
            api_host=host.rstrip("/"),
        )


# =============================================================================
# Response Models
# =============================================================================

class PlausibleValue(BaseModel):
    value: float | None = None


class PlausibleAggregateResults(BaseModel):
    visitors: PlausibleValue = PlausibleValue()
    pageviews: PlausibleValue = PlausibleValue()
    bounce_rate: PlausibleValue = PlausibleValue()
    visit_duration: PlausibleValue = PlausibleValue()


class PlausibleAggregate(BaseModel):
    results: PlausibleAggregateResults


class PlausibleTimeseriesRow(BaseModel):
    date: str
    visitors: int | None = None
    pageviews: int | None = None
    bounce_rate: float | None = None
    visit_duration: float | None = None


class PlausibleTimeseries(BaseModel):
    results: list[PlausibleTimeseriesRow]


class PlausiblePageRow(BaseModel):
    page: str
    visitors: int = 0
    pageviews: int | None = None
    bounce_rate: float | None = None
    visit_duration: float | None = None


class PlausiblePages(BaseModel):
    results: list[PlausiblePageRow]


class PlausibleSourceRow(BaseModel):
    source: str
    visitors: int = 0
    bounce_rate: float | None = None
    visit_duration: float | None = None


class PlausibleSources(BaseModel):
    results: list[PlausibleSourceRow]


class PlausibleGoalRow(BaseModel):
    goal: str
    visitors: int = 0
    events: int = 0
    conversion_rate: float | None = None


class PlausibleGoals(BaseModel):
    results: list[PlausibleGoalRow]


# =============================================================================
# Provider
# =============================================================================

class PlausibleProvider(AnalyticsProvider):
    name = "plausible"
    config_class = PlausibleConfig

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.site_id)

    async def _get(self, endpoint: str, schema, params: dict, label: str | None = None):
        return await self._fetch(
            label or endpoint,
            schema,
            "GET",
            f"{self.config.api_host}/api/v1/stats/{endpoint}",
            params={"site_id": self.config.site_id, **params},
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        base = plausible_period(period).params()

        timeseries_params = {**base, "metrics": AGGREGATE_METRICS}
        interval = TIMESERIES_INTERVALS.get(grouping or default_grouping(period))
        if interval:
            timeseries_params["interval"] = interval

        queries = {
            "stats": self._get("aggregate", PlausibleAggregate, {**base, "metrics": AGGREGATE_METRICS}),
            "timeseries": self._get("timeseries", PlausibleTimeseries, timeseries_params),
            "pages": self._get(
                "breakdown",
                PlausiblePages,
                {**base, "property": "event:page", "limit": TOP_N, "metrics": PAGE_METRICS},
                label="pages breakdown",
            ),
            "sources": self._get(
                "breakdown",
                PlausibleSources,
                {**base, "property": "visit:source", "limit": TOP_N, "metrics": SOURCE_METRICS},
                label="sources breakdown",
            ),
            "events": self._get(
                "breakdown",
                PlausibleGoals,
                {**base, "property": "event:goal", "limit": TOP_N, "metrics": GOAL_METRICS},
                label="goals breakdown",
            ),
            "realtime": self._get("realtime/visitors", int, {}),
        }

        previous_range = comparison_range(resolve_date_range(period), comparison)
        if previous_range is not None:
            queries["previous"] = self._get(
                "aggregate",
                PlausibleAggregate,
                {**plausible_custom_period(previous_range).params(), "metrics": AGGREGATE_METRICS},
                label="comparison aggregate",
            )

        data = await gather_settled(queries, label=self.name)

        stats = data["stats"]
        if stats is None:
            return None
        previous = data.get("previous")

        return DashboardData(
            stats=self._stats(stats, previous),
            timeseries=[self._timeseries_point(row) for row in (data["timeseries"] or PlausibleTimeseries(results=[])).results],
            pages=top(
                [self._page(row) for row in (data["pages"].results if data["pages"] else [])],
                key=lambda p: p.pageviews,
            ),
            sources=top(
                [self._source(row) for row in (data["sources"].results if data["sources"] else [])],
                key=lambda s: s.visitors,
            ),
            events=top(
                [self._goal(row) for row in (data["events"].results if data["events"] else [])],
                key=lambda e: e.visitors,
            ),
            realtime=Realtime(visitors=data["realtime"] or 0),
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _stats(self, current: PlausibleAggregate, previous: PlausibleAggregate | None) -> Stats:
        cur = current.results
        prev = previous.results if previous else None

        def pair(field: str, percentage: bool = False) -> tuple[float, float | None]:
            value = getattr(cur, field).value or 0
            prev_value = getattr(prev, field).value if prev else None
            if percentage:
                value = normalize_percentage(value)
                prev_value = normalize_percentage(prev_value) if prev_value is not None else None
            return value, prev_value

        return Stats(
            visitors=metric(*pair("visitors")),
            pageviews=metric(*pair("pageviews")),
            bounce_rate=metric(*pair("bounce_rate", percentage=True)),
            visit_duration=metric(*pair("visit_duration")),
        )

    def _timeseries_point(self, row: PlausibleTimeseriesRow) -> TimeseriesPoint:
        return TimeseriesPoint(
            date=row.date.replace(" ", "T"),
            visitors=row.visitors or 0,
            pageviews=row.pageviews,
            bounce_rate=row.bounce_rate,
            visit_duration=row.visit_duration,
        )

    def _page(self, row: PlausiblePageRow) -> PageRow:
        return PageRow(
            page=row.page,
            visitors=row.visitors,
            pageviews=row.pageviews or 0,
            bounce_rate=normalize_percentage(row.bounce_rate),
            visit_duration=row.visit_duration or 0,
        )

    def _source(self, row: PlausibleSourceRow) -> SourceRow:
        return SourceRow(
            source=row.source or "Direct / None",
            visitors=row.visitors,
            bounce_rate=normalize_percentage(row.bounce_rate),
            visit_duration=row.visit_duration or 0,
        )

    def _goal(self, row: PlausibleGoalRow) -> EventRow:
        return EventRow(
            goal=row.goal,
            visitors=row.visitors,
            events=row.events,
            conversion_rate=normalize_percentage(row.conversion_rate),
        )
