"""
Umami API adapter.

Umami queries by epoch-millisecond instants plus a ``unit`` bucket size.
Its metrics breakdowns only return counts, so the site-wide bounce rate and
average duration from the stats call are applied to every page and source
row. Umami has no realtime endpoint; realtime is always 0.

There is no weekly ``unit`` either, so a ``week`` grouping returns daily
points.
"""
import logging
from dataclasses import dataclass, replace

from pydantic import BaseModel, field_validator

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
from ..core.normalize import epoch_ms_to_iso, metric, safe_ratio, top
from ..core.periods import comparison_instants, default_grouping, epoch_ms, resolve_instant_range
from .base import DEFAULT_TIMEOUT, AnalyticsProvider, ProviderConfig, env, gather_settled

logger = logging.getLogger(__name__)

UMAMI_DEFAULT_HOST = "https://api.umami.is"

# Umami has no weekly unit
UNITS = {
    "hour": "hour",
    "day": "day",
    "week": "day",
    "month": "month",
    "year": "year",
}


@dataclass
class UmamiConfig(ProviderConfig):
    api_key: str | None = None
    site_id: str | None = None  # website UUID
    api_host: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def resolve(self) -> "UmamiConfig":
        host = self.api_host or env("UMAMI_API_HOST") or UMAMI_DEFAULT_HOST
        return replace(
            self,
            api_key=self.api_key or env("UMAMI_API_KEY"),
            site_id=self.site_id or env("UMAMI_SITE_ID"),
            api_host=host.rstrip("/"),
        )


# =============================================================================
# Response Models
# =============================================================================

class UmamiStats(BaseModel):
    pageviews: float = 0
    visitors: float = 0
    visits: float = 0
    bounces: float = 0
    totaltime: float = 0

    @field_validator("*", mode="before")
    @classmethod
    def _unwrap(cls, value):
        # Older servers wrap each figure as {"value": n, "change": n}
        if isinstance(value, dict):
            return value.get("value") or 0
        return value


class UmamiPoint(BaseModel):
    x: int | str  # bucket start, epoch ms or "YYYY-MM-DD HH:MM:SS"
    y: int = 0


class UmamiPageviews(BaseModel):
    pageviews: list[UmamiPoint] = []
    sessions: list[UmamiPoint] = []


class UmamiMetricRow(BaseModel):
    x: str | None = None
    y: int = 0


def _point_date(x: int | str) -> str:
    if isinstance(x, int):
        return epoch_ms_to_iso(x)
    return x.replace(" ", "T")


# =============================================================================
# Provider
# =============================================================================

class UmamiProvider(AnalyticsProvider):
    name = "umami"
    config_class = UmamiConfig

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.site_id)

    async def _get(self, endpoint: str, schema, params: dict, label: str | None = None):
        return await self._fetch(
            label or endpoint,
            schema,
            "GET",
            f"{self.config.api_host}/api/websites/{self.config.site_id}/{endpoint}",
            params=params,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

    def _metrics(self, metric_type: str, window: dict):
        return self._get(
            "metrics",
            list[UmamiMetricRow],
            {**window, "type": metric_type, "limit": TOP_N},
            label=f"{metric_type} metrics",
        )

    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        start, end = resolve_instant_range(period)
        window = {"startAt": epoch_ms(start), "endAt": epoch_ms(end)}
        unit = UNITS.get(grouping or default_grouping(period), "day")

        queries = {
            "stats": self._get("stats", UmamiStats, window),
            "timeseries": self._get(
                "pageviews",
                UmamiPageviews,
                {**window, "unit": unit, "timezone": "UTC"},
            ),
            "pages": self._metrics("url", window),
            "sources": self._metrics("referrer", window),
            "events": self._metrics("event", window),
        }

        previous_window = comparison_instants(start, end, comparison)
        if previous_window is not None:
            prev_start, prev_end = previous_window
            queries["previous"] = self._get(
                "stats",
                UmamiStats,
                {"startAt": epoch_ms(prev_start), "endAt": epoch_ms(prev_end)},
                label="comparison stats",
            )

        data = await gather_settled(queries, label=self.name)

        stats = data["stats"]
        if stats is None:
            return None

        bounce_rate = safe_ratio(stats.bounces, stats.visits) * 100
        avg_duration = safe_ratio(stats.totaltime, stats.visits)

        pages = [
            PageRow(
                page=row.x or "/",
                visitors=row.y,
                pageviews=row.y,
                bounce_rate=bounce_rate,
                visit_duration=avg_duration,
            )
            for row in data["pages"] or []
        ]
        sources = [
            SourceRow(
                source=row.x or "Direct",
                visitors=row.y,
                bounce_rate=bounce_rate,
                visit_duration=avg_duration,
            )
            for row in data["sources"] or []
        ]
        events = [
            EventRow(
                goal=row.x or "(unknown)",
                visitors=row.y,
                events=row.y,
                conversion_rate=safe_ratio(row.y, stats.visitors) * 100,
            )
            for row in data["events"] or []
        ]

        return DashboardData(
            stats=self._stats(stats, data.get("previous")),
            timeseries=self._timeseries(data["timeseries"]),
            pages=top(pages, key=lambda p: p.pageviews),
            sources=top(sources, key=lambda s: s.visitors),
            events=top(events, key=lambda e: e.visitors),
            realtime=Realtime(visitors=0),
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _stats(self, current: UmamiStats, previous: UmamiStats | None) -> Stats:
        def derived(stats: UmamiStats) -> tuple[float, float]:
            return (
                safe_ratio(stats.bounces, stats.visits) * 100,
                safe_ratio(stats.totaltime, stats.visits),
            )

        bounce_rate, duration = derived(current)
        if previous is None:
            return Stats(
                visitors=metric(current.visitors),
                pageviews=metric(current.pageviews),
                bounce_rate=metric(bounce_rate),
                visit_duration=metric(duration),
            )

        prev_bounce_rate, prev_duration = derived(previous)
        return Stats(
            visitors=metric(current.visitors, previous.visitors),
            pageviews=metric(current.pageviews, previous.pageviews),
            bounce_rate=metric(bounce_rate, prev_bounce_rate),
            visit_duration=metric(duration, prev_duration),
        )

    def _timeseries(self, pageviews: UmamiPageviews | None) -> list[TimeseriesPoint]:
        if pageviews is None:
            return []

        sessions = {str(point.x): point.y for point in pageviews.sessions}
        return [
            TimeseriesPoint(
                date=_point_date(point.x),
                visitors=sessions.get(str(point.x), 0),
                pageviews=point.y,
            )
            for point in pageviews.pageviews
        ]
