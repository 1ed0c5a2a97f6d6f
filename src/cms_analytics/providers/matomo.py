"""
Matomo Reporting API adapter.

Every call goes to ``index.php?module=API`` with the token in the query
string. Periods are ``{period, date}`` pairs; windows without a calendar
equivalent are sent as ``period=range&date=start,end``. Percentages arrive
as strings like ``"45%"``. Realtime is the number of visitors in the last
five minutes from ``Live.getCounters``.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import urlparse

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
from ..core.normalize import metric, normalize_percentage, parse_response, top
from ..core.periods import (
    comparison_range,
    default_grouping,
    matomo_period,
    matomo_range_period,
)
from .base import (
    DEFAULT_TIMEOUT,
    AnalyticsProvider,
    ProviderConfig,
    ProviderResponseError,
    env,
    gather_settled,
)

logger = logging.getLogger(__name__)

LIVE_WINDOW_MINUTES = 5

# Matomo has no hourly period for VisitsSummary over a range
TIMESERIES_PERIODS = {
    "hour": "day",
    "day": "day",
    "week": "week",
    "month": "month",
    "year": "year",
}


@dataclass
class MatomoConfig(ProviderConfig):
    api_token: str | None = None
    site_id: str | None = None
    api_host: str | None = None  # self-hosted, no default
    timeout: float = DEFAULT_TIMEOUT

    def resolve(self) -> "MatomoConfig":
        host = self.api_host or env("MATOMO_API_HOST")
        return replace(
            self,
            api_token=self.api_token or env("MATOMO_API_TOKEN"),
            site_id=self.site_id or env("MATOMO_SITE_ID"),
            api_host=host.rstrip("/") if host else None,
        )


# =============================================================================
# Response Models
# =============================================================================

def _first_row(value: Any) -> Any:
    # Some Matomo versions wrap single-period reports in a one-item list
    if isinstance(value, list):
        return value[0] if value else {}
    return value


class MatomoVisitsSummary(BaseModel):
    nb_uniq_visitors: int | None = None
    nb_visits: int = 0
    nb_actions: int = 0
    bounce_rate: str | float | None = None
    avg_time_on_site: float = 0

    @property
    def visitors(self) -> int:
        return self.nb_uniq_visitors or self.nb_visits


class MatomoPage(BaseModel):
    label: str = ""
    url: str | None = None
    nb_visits: int = 0
    nb_uniq_visitors: int | None = None
    nb_hits: int = 0
    bounce_rate: str | float | None = None
    avg_time_on_page: float = 0

    @property
    def path(self) -> str:
        if self.url:
            return urlparse(self.url).path or "/"
        label = self.label.strip()
        return label if label.startswith("/") else f"/{label}"


class MatomoReferrer(BaseModel):
    label: str = ""
    nb_visits: int = 0
    nb_uniq_visitors: int | None = None
    bounce_rate: str | float | None = None
    avg_time_on_site: float = 0


class MatomoGoal(BaseModel):
    label: str | None = None
    name: str | None = None
    nb_conversions: int = 0
    nb_visits_converted: int = 0
    conversion_rate: str | float | None = None


class MatomoCounters(BaseModel):
    visitors: int | None = None
    visits: int = 0


class MatomoTimeseries(BaseModel):
    """``VisitsSummary.get`` over several periods: date key -> summary.

    Matomo reports an empty period as ``[]`` rather than zeros.
    """
    days: dict[str, MatomoVisitsSummary]

    @field_validator("days", mode="before")
    @classmethod
    def _empty_days(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {key: (row or {}) for key, row in value.items()}


def _timeseries_date(key: str) -> str:
    """Matomo period keys to ISO dates.

    Weeks are keyed ``"2024-01-08,2024-01-14"``, months ``"2024-01"`` and
    years ``"2024"``; each maps to the first day of its bucket.
    """
    key = key.split(",")[0].strip()
    if len(key) == 7:
        return f"{key}-01"
    if len(key) == 4:
        return f"{key}-01-01"
    return key


# =============================================================================
# Provider
# =============================================================================

class MatomoProvider(AnalyticsProvider):
    name = "matomo"
    config_class = MatomoConfig

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_token and self.config.site_id and self.config.api_host)

    def _check_payload(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("result") == "error":
            raise ProviderResponseError(f"matomo API error: {payload.get('message', 'unknown error')}")

    async def _api(self, method: str, schema, params: dict, label: str | None = None):
        return await self._fetch(
            label or method,
            schema,
            "GET",
            f"{self.config.api_host}/index.php",
            params={
                "module": "API",
                "format": "JSON",
                "token_auth": self.config.api_token,
                "idSite": self.config.site_id,
                "method": method,
                **params,
            },
        )

    async def _summary(self, params: dict, label: str | None = None) -> MatomoVisitsSummary | None:
        result = await self._api("VisitsSummary.get", Any, params, label=label)
        if result is None:
            return None
        return parse_response(
            MatomoVisitsSummary,
            _first_row(result),
            label=f"matomo {label or 'VisitsSummary.get'}",
        )

    async def _timeseries(self, params: dict) -> MatomoTimeseries | None:
        result = await self._api("VisitsSummary.get", Any, params, label="timeseries")
        if result is None:
            return None
        return parse_response(MatomoTimeseries, {"days": result}, label="matomo timeseries")

    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        native = matomo_period(period)
        current = native.params()
        # Time series and comparison follow the window Matomo actually reports
        current_range = native.window
        bucket = TIMESERIES_PERIODS.get(grouping or default_grouping(period), "day")

        queries = {
            "stats": self._summary(current),
            "timeseries": self._timeseries({"period": bucket, "date": current_range.as_param()}),
            "pages": self._api(
                "Actions.getPageUrls",
                list[MatomoPage],
                {**current, "flat": 1, "filter_limit": TOP_N, "filter_sort_column": "nb_hits"},
                label="pages",
            ),
            "sources": self._api(
                "Referrers.getAll",
                list[MatomoReferrer],
                {**current, "filter_limit": TOP_N},
                label="referrers",
            ),
            "events": self._api("Goals.getGoals", list[MatomoGoal], current, label="goals"),
            "realtime": self._api(
                "Live.getCounters",
                list[MatomoCounters],
                {"lastMinutes": LIVE_WINDOW_MINUTES},
                label="live counters",
            ),
        }

        previous_range = comparison_range(current_range, comparison)
        if previous_range is not None:
            queries["previous"] = self._summary(
                matomo_range_period(previous_range).params(),
                label="comparison summary",
            )

        data = await gather_settled(queries, label=self.name)

        stats = data["stats"]
        if stats is None:
            return None

        pages = [
            PageRow(
                page=row.path,
                visitors=row.nb_uniq_visitors or row.nb_visits,
                pageviews=row.nb_hits,
                bounce_rate=normalize_percentage(row.bounce_rate),
                visit_duration=row.avg_time_on_page,
            )
            for row in data["pages"] or []
        ]
        sources = [
            SourceRow(
                source=row.label or "Direct",
                visitors=row.nb_uniq_visitors or row.nb_visits,
                bounce_rate=normalize_percentage(row.bounce_rate),
                visit_duration=row.avg_time_on_site,
            )
            for row in data["sources"] or []
        ]
        events = [
            EventRow(
                goal=row.label or row.name or "(unnamed goal)",
                visitors=row.nb_visits_converted,
                events=row.nb_conversions,
                conversion_rate=normalize_percentage(row.conversion_rate),
            )
            for row in data["events"] or []
        ]

        return DashboardData(
            stats=self._stats(stats, data.get("previous")),
            timeseries=self._timeseries_points(data["timeseries"]),
            pages=top(pages, key=lambda p: p.pageviews),
            sources=top(sources, key=lambda s: s.visitors),
            events=top(events, key=lambda e: e.visitors),
            realtime=Realtime(visitors=self._live_visitors(data["realtime"])),
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _stats(self, current: MatomoVisitsSummary, previous: MatomoVisitsSummary | None) -> Stats:
        bounce_rate = normalize_percentage(current.bounce_rate)
        if previous is None:
            return Stats(
                visitors=metric(current.visitors),
                pageviews=metric(current.nb_actions),
                bounce_rate=metric(bounce_rate),
                visit_duration=metric(current.avg_time_on_site),
            )

        return Stats(
            visitors=metric(current.visitors, previous.visitors),
            pageviews=metric(current.nb_actions, previous.nb_actions),
            bounce_rate=metric(bounce_rate, normalize_percentage(previous.bounce_rate)),
            visit_duration=metric(current.avg_time_on_site, previous.avg_time_on_site),
        )

    def _timeseries_points(self, series: MatomoTimeseries | None) -> list[TimeseriesPoint]:
        if series is None:
            return []
        return [
            TimeseriesPoint(
                date=_timeseries_date(key),
                visitors=row.visitors,
                pageviews=row.nb_actions,
                bounce_rate=normalize_percentage(row.bounce_rate),
                visit_duration=row.avg_time_on_site,
            )
            for key, row in series.days.items()
        ]

    def _live_visitors(self, counters: list[MatomoCounters] | None) -> int:
        if not counters:
            return 0
        first = counters[0]
        return first.visitors if first.visitors is not None else first.visits
