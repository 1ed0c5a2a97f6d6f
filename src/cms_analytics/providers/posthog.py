"""
PostHog API adapter.

PostHog has no summary endpoint matching the dashboard, so the summary,
pages and sources are computed from raw ``$pageview`` events. A user with
exactly one pageview in the window counts as a bounce. Session duration is
not available from the events API and is reported as a fixed placeholder.
PostHog has no realtime endpoint; realtime is always 0.
"""
import json
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, Field

from ..core.models import (
    ComparisonSpec,
    DashboardData,
    EventRow,
    PageRow,
    Realtime,
    SourceRow,
    Stats,
    TimeseriesPoint,
)
from ..core.normalize import metric, safe_ratio, top
from ..core.periods import comparison_instants, default_grouping, resolve_instant_range
from .base import DEFAULT_TIMEOUT, AnalyticsProvider, ProviderConfig, env, gather_settled

logger = logging.getLogger(__name__)

POSTHOG_DEFAULT_HOST = "https://app.posthog.com"

PLACEHOLDER_DURATION = 180  # seconds
EVENTS_PAGE_SIZE = 1000
MAX_EVENT_PAGES = 10

INTERVALS = {
    "hour": "hour",
    "day": "day",
    "week": "week",
    "month": "month",
    "year": "month",
}

TREND_SERIES = [
    {"id": "$pageview", "type": "events", "math": "total"},
    {"id": "$pageview", "type": "events", "math": "dau"},
]


@dataclass
class PostHogConfig(ProviderConfig):
    api_key: str | None = None  # personal API key
    project_id: str | None = None
    api_host: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def resolve(self) -> "PostHogConfig":
        host = self.api_host or env("POSTHOG_API_HOST") or POSTHOG_DEFAULT_HOST
        return replace(
            self,
            api_key=self.api_key or env("POSTHOG_API_KEY"),
            project_id=self.project_id or env("POSTHOG_PROJECT_ID"),
            api_host=host.rstrip("/"),
        )


# =============================================================================
# Response Models
# =============================================================================

class PostHogEvent(BaseModel):
    event: str
    distinct_id: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    timestamp: str | None = None

    @property
    def path(self) -> str:
        pathname = self.properties.get("$pathname")
        if pathname:
            return pathname
        url = self.properties.get("$current_url")
        if url:
            return urlparse(url).path or "/"
        return "/"

    @property
    def source(self) -> str:
        utm_source = self.properties.get("utm_source")
        if utm_source:
            return utm_source
        domain = self.properties.get("$referring_domain")
        if domain and domain != "$direct":
            return domain
        return "Direct"


class PostHogEventsPage(BaseModel):
    results: list[PostHogEvent] = Field(default_factory=list)
    next: str | None = None


class PostHogTrendSeries(BaseModel):
    data: list[float] = Field(default_factory=list)
    days: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)


class PostHogTrend(BaseModel):
    result: list[PostHogTrendSeries] = Field(
        default_factory=list,
        validation_alias=AliasChoices("result", "results"),
    )


# =============================================================================
# Provider
# =============================================================================

class PostHogProvider(AnalyticsProvider):
    name = "posthog"
    config_class = PostHogConfig

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.project_id)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, endpoint: str) -> str:
        return f"{self.config.api_host}/api/projects/{self.config.project_id}/{endpoint}"

    async def _events(
        self,
        after: datetime,
        before: datetime,
        event: str | None = None,
        label: str = "events",
    ) -> list[PostHogEvent] | None:
        """All events in the window, following ``next`` links.

        None if the first page fails; a later failure keeps what was read.
        """
        params = {
            "after": after.isoformat(),
            "before": before.isoformat(),
            "limit": EVENTS_PAGE_SIZE,
        }
        if event:
            params["event"] = event

        page = await self._fetch(label, PostHogEventsPage, "GET", self._url("events/"), params=params, headers=self._headers)
        if page is None:
            return None

        events = list(page.results)
        pages_read = 1
        while page.next and pages_read < MAX_EVENT_PAGES:
            page = await self._fetch(label, PostHogEventsPage, "GET", page.next, headers=self._headers)
            if page is None:
                break
            events.extend(page.results)
            pages_read += 1

        if page is not None and page.next:
            logger.warning(f"posthog {label}: stopped after {MAX_EVENT_PAGES} pages, results are truncated")
        return events

    async def _trend(self, after: datetime, before: datetime, interval: str) -> PostHogTrend | None:
        return await self._fetch(
            "pageview trend",
            PostHogTrend,
            "GET",
            self._url("insights/trend/"),
            params={
                "events": json.dumps(TREND_SERIES),
                "date_from": after.isoformat(),
                "date_to": before.isoformat(),
                "interval": interval,
            },
            headers=self._headers,
        )

    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        start, end = resolve_instant_range(period)
        interval = INTERVALS.get(grouping or default_grouping(period), "day")

        queries = {
            "pageviews": self._events(start, end, event="$pageview", label="pageviews"),
            "timeseries": self._trend(start, end, interval),
            "events": self._events(start, end, label="custom events"),
        }

        previous_window = comparison_instants(start, end, comparison)
        if previous_window is not None:
            prev_start, prev_end = previous_window
            queries["previous"] = self._events(prev_start, prev_end, event="$pageview", label="comparison pageviews")

        data = await gather_settled(queries, label=self.name)

        pageviews = data["pageviews"]
        if pageviews is None:
            return None

        visitors = len({e.distinct_id for e in pageviews})
        bounce_rate = self._bounce_rate(pageviews)

        return DashboardData(
            stats=self._stats(pageviews, data.get("previous")),
            timeseries=self._timeseries(data["timeseries"]),
            pages=top(self._pages(pageviews, bounce_rate), key=lambda p: p.pageviews),
            sources=top(self._sources(pageviews, bounce_rate), key=lambda s: s.visitors),
            events=top(self._custom_events(data["events"] or [], visitors), key=lambda e: e.visitors),
            realtime=Realtime(visitors=0),
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _bounce_rate(self, pageviews: list[PostHogEvent]) -> float:
        per_user = Counter(e.distinct_id for e in pageviews)
        bounced = sum(1 for count in per_user.values() if count == 1)
        return safe_ratio(bounced, len(per_user)) * 100

    def _stats(self, current: list[PostHogEvent], previous: list[PostHogEvent] | None) -> Stats:
        visitors = len({e.distinct_id for e in current})
        bounce_rate = self._bounce_rate(current)

        if previous is None:
            return Stats(
                visitors=metric(visitors),
                pageviews=metric(len(current)),
                bounce_rate=metric(bounce_rate),
                visit_duration=metric(PLACEHOLDER_DURATION),
            )

        return Stats(
            visitors=metric(visitors, len({e.distinct_id for e in previous})),
            pageviews=metric(len(current), len(previous)),
            bounce_rate=metric(bounce_rate, self._bounce_rate(previous)),
            visit_duration=metric(PLACEHOLDER_DURATION, PLACEHOLDER_DURATION),
        )

    def _pages(self, pageviews: list[PostHogEvent], bounce_rate: float) -> list[PageRow]:
        hits = Counter()
        users = defaultdict(set)
        for event in pageviews:
            hits[event.path] += 1
            users[event.path].add(event.distinct_id)

        return [
            PageRow(
                page=path,
                visitors=len(users[path]),
                pageviews=count,
                bounce_rate=bounce_rate,
                visit_duration=PLACEHOLDER_DURATION,
            )
            for path, count in hits.items()
        ]

    def _sources(self, pageviews: list[PostHogEvent], bounce_rate: float) -> list[SourceRow]:
        users = defaultdict(set)
        for event in pageviews:
            users[event.source].add(event.distinct_id)

        return [
            SourceRow(
                source=source,
                visitors=len(distinct_ids),
                bounce_rate=bounce_rate,
                visit_duration=PLACEHOLDER_DURATION,
            )
            for source, distinct_ids in users.items()
        ]

    def _custom_events(self, events: list[PostHogEvent], total_visitors: int) -> list[EventRow]:
        counts = Counter()
        users = defaultdict(set)
        for event in events:
            # $pageview, $autocapture, $pageleave... are PostHog's own
            if event.event.startswith("$"):
                continue
            counts[event.event] += 1
            users[event.event].add(event.distinct_id)

        return [
            EventRow(
                goal=name,
                visitors=len(users[name]),
                events=count,
                conversion_rate=safe_ratio(len(users[name]), total_visitors) * 100,
            )
            for name, count in counts.items()
        ]

    def _timeseries(self, trend: PostHogTrend | None) -> list[TimeseriesPoint]:
        if trend is None or not trend.result:
            return []

        totals = trend.result[0]
        uniques = trend.result[1] if len(trend.result) > 1 else None
        dates = totals.days or totals.labels

        points = []
        for i, day in enumerate(dates):
            pageviews = totals.data[i] if i < len(totals.data) else 0
            visitors = uniques.data[i] if uniques and i < len(uniques.data) else 0
            points.append(TimeseriesPoint(date=day.replace(" ", "T"), visitors=int(visitors), pageviews=int(pageviews)))
        return points
