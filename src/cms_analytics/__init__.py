"""
Analytics dashboard data for CMS admin panels, from the provider you already use.

Usage:
    from cms_analytics import setup_analytics

    analytics = setup_analytics(
        provider="plausible",
        provider_config={"api_key": "...", "site_id": "example.com"},
    )

    # Include dashboard routes
    app.include_router(analytics.router, prefix="/api/analytics")

    # Or call the provider directly
    data = await analytics.provider.get_dashboard_data("30d", {"period": "previousPeriod"})
"""

from .collection import get_collection_analytics
from .config import AnalyticsSettings
from .core.models import ComparisonSpec, DashboardData
from .providers import PROVIDERS, AnalyticsProvider, UnknownProviderError, create_provider
from .routes import create_analytics_router

__version__ = "0.1.0"
__all__ = [
    "PROVIDERS",
    "Analytics",
    "AnalyticsProvider",
    "AnalyticsSettings",
    "ComparisonSpec",
    "DashboardData",
    "UnknownProviderError",
    "create_provider",
    "get_collection_analytics",
    "setup_analytics",
]


class Analytics:
    """Main analytics interface: one provider, its settings and its router."""

    def __init__(self, settings: AnalyticsSettings):
        self.settings = settings
        self.provider = create_provider(settings.provider, settings.provider_config)
        self.router = create_analytics_router(self.provider, settings)

    @property
    def enabled(self) -> bool:
        return self.settings.enabled and self.settings.enable_dashboard

    async def get_dashboard_data(self, *args, **kwargs) -> DashboardData | None:
        return await self.provider.get_dashboard_data(*args, **kwargs)

    async def get_collection_analytics(self, path: str) -> DashboardData | None:
        return await get_collection_analytics(self.provider, path)


def setup_analytics(
    settings: AnalyticsSettings | None = None,
    **options,
) -> Analytics:
    """
    Set up analytics for a site.

    Args:
        settings: Complete plugin settings. When omitted they are built from
                  ``options`` (any AnalyticsSettings field, e.g. provider,
                  provider_config, default_time_period).

    Returns:
        Analytics instance with provider and router

    Raises:
        UnknownProviderError: If the provider name is not registered
        SettingsError: If the settings are inconsistent
    """
    if settings is None:
        settings = AnalyticsSettings(**options)
    return Analytics(settings)
