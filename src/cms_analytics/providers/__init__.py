"""
Analytics provider adapters and the name -> adapter registry.
"""
from .base import (
    AnalyticsProvider,
    ProviderConfig,
    ProviderError,
    ProviderRequestError,
    ProviderResponseError,
    gather_settled,
)
from .google_analytics import GoogleAnalyticsConfig, GoogleAnalyticsProvider
from .matomo import MatomoConfig, MatomoProvider
from .plausible import PlausibleConfig, PlausibleProvider
from .posthog import PostHogConfig, PostHogProvider
from .umami import UmamiConfig, UmamiProvider

PROVIDERS: dict[str, type[AnalyticsProvider]] = {
    "plausible": PlausibleProvider,
    "umami": UmamiProvider,
    "matomo": MatomoProvider,
    "posthog": PostHogProvider,
    "google-analytics": GoogleAnalyticsProvider,
}


class UnknownProviderError(ValueError):
    """Raised when a provider name is not in the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Unknown analytics provider {name!r}. "
            f"Choose one of: {', '.join(sorted(PROVIDERS))}"
        )


def create_provider(
    provider: str | AnalyticsProvider,
    config: ProviderConfig | dict | None = None,
) -> AnalyticsProvider:
    """Build the adapter for ``provider``.

    An already constructed adapter is returned unchanged and ``config`` is
    ignored. A name is looked up in :data:`PROVIDERS` and the adapter is
    built from ``config`` (a dict or the adapter's config dataclass), with
    empty fields filled from the environment.

    Raises:
        UnknownProviderError: If ``provider`` is a name not in the registry
    """
    if isinstance(provider, AnalyticsProvider):
        return provider

    provider_class = PROVIDERS.get(provider)
    if provider_class is None:
        raise UnknownProviderError(provider)

    return provider_class(config)


__all__ = [
    "PROVIDERS",
    "AnalyticsProvider",
    "GoogleAnalyticsConfig",
    "GoogleAnalyticsProvider",
    "MatomoConfig",
    "MatomoProvider",
    "PlausibleConfig",
    "PlausibleProvider",
    "PostHogConfig",
    "PostHogProvider",
    "ProviderConfig",
    "ProviderError",
    "ProviderRequestError",
    "ProviderResponseError",
    "UmamiConfig",
    "UmamiProvider",
    "UnknownProviderError",
    "create_provider",
    "gather_settled",
]
