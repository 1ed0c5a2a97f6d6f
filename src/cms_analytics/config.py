"""
Configuration for CMS Analytics.
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .core.periods import DEFAULT_PERIOD, PERIODS, PROVIDER_PERIOD_MAPPINGS, map_time_period_to_provider

if TYPE_CHECKING:
    from .providers import AnalyticsProvider, ProviderConfig

logger = logging.getLogger(__name__)

DEFAULT_TIME_PERIODS = [
    "day",
    "7d",
    "14d",
    "30d",
    "lastMonth",
    "thisMonth",
    "12mo",
    "custom",
]

DEFAULT_COMPARISON_OPTIONS = [
    "previousPeriod",
    "sameLastYear",
    "custom",
]

TIME_PERIOD_LABELS = {
    "day": "Today",
    "7d": "Last 7 days",
    "14d": "Last 14 days",
    "30d": "Last 30 days",
    "lastMonth": "Last month",
    "thisMonth": "This month",
    "month": "This month",
    "6mo": "Last 6 months",
    "12mo": "Last 12 months",
    "year": "Last 365 days",
    "lastYear": "Last year",
    "thisYear": "This year",
    "all": "All time",
    "custom": "Custom",
}

COMPARISON_LABELS = {
    "previousPeriod": "Previous period",
    "sameLastYear": "Same period last year",
    "custom": "Custom comparison",
}


class SettingsError(ValueError):
    """Raised when plugin settings are inconsistent."""
    pass


@dataclass
class AnalyticsSettings:
    """Plugin-level options.

    Usage:
        settings = AnalyticsSettings(
            provider="plausible",
            provider_config={"site_id": "example.com"},
            time_periods=["7d", "30d", "12mo"],
            default_time_period="30d",
        )
    """

    # Provider: registry name or an already constructed adapter
    provider: "str | AnalyticsProvider" = "plausible"
    provider_config: "ProviderConfig | dict | None" = None

    # Feature flags
    enabled: bool = True
    enable_dashboard: bool = True
    enable_comparison: bool = True

    # Display settings
    dashboard_path: str = "/analytics"
    time_periods: list[str] = field(default_factory=lambda: list(DEFAULT_TIME_PERIODS))
    default_time_period: str = DEFAULT_PERIOD
    comparison_options: list[str] = field(default_factory=lambda: list(DEFAULT_COMPARISON_OPTIONS))

    def __post_init__(self):
        """Validate configuration after initialization."""
        unknown = [p for p in self.time_periods if p not in PERIODS]
        if unknown:
            raise SettingsError(f"Unknown time periods: {', '.join(unknown)}")

        if self.default_time_period not in self.time_periods:
            raise SettingsError(
                f"Default time period {self.default_time_period!r} "
                f"is not one of the offered periods"
            )

        unknown = [c for c in self.comparison_options if c not in COMPARISON_LABELS]
        if unknown:
            raise SettingsError(f"Unknown comparison options: {', '.join(unknown)}")

        if not self.dashboard_path.startswith("/"):
            raise SettingsError("dashboard_path must start with '/'")

        if self.enable_comparison and not self.comparison_options:
            logger.warning("Comparison is enabled but no comparison options are offered")

    @property
    def provider_name(self) -> str:
        if isinstance(self.provider, str):
            return self.provider
        return self.provider.name

    def ui_config(self) -> dict:
        """Options the dashboard UI renders its selectors from."""
        return {
            "provider": self.provider_name,
            "time_periods": [
                {"value": p, "label": TIME_PERIOD_LABELS.get(p, p)} for p in self.time_periods
            ],
            "default_time_period": self.default_time_period,
            "comparison_options": [
                {"value": c, "label": COMPARISON_LABELS[c]} for c in self.comparison_options
            ],
            "enable_comparison": self.enable_comparison,
        }


__all__ = [
    "COMPARISON_LABELS",
    "DEFAULT_COMPARISON_OPTIONS",
    "DEFAULT_TIME_PERIODS",
    "PROVIDER_PERIOD_MAPPINGS",
    "TIME_PERIOD_LABELS",
    "AnalyticsSettings",
    "SettingsError",
    "map_time_period_to_provider",
]
