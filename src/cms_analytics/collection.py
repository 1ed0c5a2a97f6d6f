"""
Per-path analytics for a single CMS document.

Vendors are not asked for a path filter; the 30-day dashboard is fetched
and narrowed to the one page row, whose figures become the summary.
"""
import logging

from .core.models import DashboardData, MetricPoint, PageRow, Stats
from .providers.base import AnalyticsProvider

logger = logging.getLogger(__name__)

COLLECTION_PERIOD = "30d"


def _stats_from_page(page: PageRow) -> Stats:
    return Stats(
        visitors=MetricPoint(value=page.visitors),
        pageviews=MetricPoint(value=page.pageviews),
        bounce_rate=MetricPoint(value=page.bounce_rate),
        visit_duration=MetricPoint(value=page.visit_duration),
    )


def filter_by_path(data: DashboardData, path: str) -> DashboardData:
    """Narrow ``data`` to ``path``.

    ``pages`` keeps only the matching row and ``stats`` is rebuilt from it
    without changes; with no matching row every stat is zero.
    """
    pages = [p for p in data.pages if p.page == path]
    stats = _stats_from_page(pages[0]) if pages else Stats.zero()
    return data.model_copy(update={"pages": pages, "stats": stats})


async def get_collection_analytics(provider: AnalyticsProvider, path: str) -> DashboardData | None:
    """30-day analytics for one path, or None if the provider returned nothing."""
    data = await provider.get_dashboard_data(COLLECTION_PERIOD)
    if data is None:
        logger.error(f"{provider.name}: no data for collection analytics of {path}")
        return None
    return filter_by_path(data, path)
