"""
JSON routes backing the admin dashboard.

The provider and settings are passed in when the router is built; handlers
read them from the closure and never from module state.
"""
import logging
from datetime import date

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from ..collection import get_collection_analytics
from ..config import AnalyticsSettings
from ..core.models import ComparisonSpec
from ..core.periods import GROUPINGS, InvalidPeriodError, is_custom_range, parse_custom_range
from ..providers.base import AnalyticsProvider

logger = logging.getLogger(__name__)

FETCH_FAILED = "Failed to fetch analytics data"


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _effective_period(period: str, start: date | None, end: date | None) -> str:
    """``custom`` plus both dates becomes the literal ``start,end`` range."""
    if period == "custom" and start and end:
        return f"{start.isoformat()},{end.isoformat()}"
    return period


def create_analytics_router(provider: AnalyticsProvider, settings: AnalyticsSettings) -> APIRouter:
    """Create the dashboard API router.

    Args:
        provider: Adapter every request is served from
        settings: Plugin settings (offered periods, comparison switch)
    """
    router = APIRouter(tags=["analytics"])

    def _comparison(
        comparison: str | None,
        compare_start: date | None,
        compare_end: date | None,
    ) -> ComparisonSpec | None:
        if not comparison or not settings.enable_comparison:
            return None
        if comparison not in settings.comparison_options:
            return None
        return ComparisonSpec(
            period=comparison,
            custom_start_date=compare_start,
            custom_end_date=compare_end,
        )

    @router.get("/dashboard")
    async def dashboard(
        period: str = Query(default=settings.default_time_period),
        start: date | None = None,
        end: date | None = None,
        comparison: str | None = None,
        compare_start: date | None = None,
        compare_end: date | None = None,
        grouping: str | None = None,
    ):
        """Dashboard data for a period, with optional comparison."""
        effective_period = _effective_period(period, start, end)
        if is_custom_range(effective_period):
            try:
                parse_custom_range(effective_period)
            except InvalidPeriodError as e:
                return _error(str(e), 400)

        if grouping is not None and grouping not in GROUPINGS:
            return _error(f"Unknown grouping {grouping!r}", 400)

        spec = _comparison(comparison, compare_start, compare_end)
        logger.debug(f"Dashboard request: period={effective_period} comparison={spec} grouping={grouping}")

        data = await provider.get_dashboard_data(effective_period, spec, grouping)
        if data is None:
            logger.error(f"{provider.name} returned no data for period {effective_period}")
            return _error(FETCH_FAILED, 500)
        return data

    @router.get("/collection")
    async def collection(path: str | None = None):
        """Last 30 days for a single page path."""
        if not path:
            return _error("Path parameter is required", 400)

        data = await get_collection_analytics(provider, path)
        if data is None:
            return _error(FETCH_FAILED, 500)
        return data

    @router.get("/config")
    async def ui_config():
        """Selector options for the dashboard UI."""
        return settings.ui_config()

    return router
