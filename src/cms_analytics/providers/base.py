"""
AnalyticsProvider base class - subclass this to add a new analytics vendor.

The base class owns everything that is the same for every vendor: the
credential check, the HTTP round trip, the concurrent fan-out and the rule
that ``get_dashboard_data`` never raises.
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable

import httpx

from ..core.models import ComparisonSpec, DashboardData
from ..core.normalize import parse_response
from ..core.periods import DEFAULT_PERIOD

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ProviderError(Exception):
    """Base class for failures talking to an analytics vendor."""
    pass


class ProviderRequestError(ProviderError):
    """Network failure, timeout or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderResponseError(ProviderError):
    """The vendor answered 2xx but reported an error in the body."""
    pass


def env(*names: str) -> str | None:
    """First non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass
class ProviderConfig:
    """Base for provider configs.

    Subclasses declare their credential fields followed by
    ``timeout: float = DEFAULT_TIMEOUT``.
    """

    def resolve(self) -> "ProviderConfig":
        """Copy with empty fields filled from the environment."""
        return self


async def gather_settled(queries: dict[str, Awaitable[Any]], label: str = "") -> dict[str, Any]:
    """Execute named awaitables concurrently.

    Returns a dict with the same keys; a failed query maps to None and is
    logged, so one failure never cancels the others.
    """
    names = list(queries.keys())
    results = await asyncio.gather(*queries.values(), return_exceptions=True)

    output = {}
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.error(f"{label} query '{name}' failed: {result!r}")
            output[name] = None
        else:
            output[name] = result
    return output


class AnalyticsProvider(ABC):
    """A vendor adapter producing :class:`DashboardData`."""

    name: str = ""
    config_class: type[ProviderConfig] = ProviderConfig

    def __init__(
        self,
        config: ProviderConfig | dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if config is None:
            config = self.config_class()
        elif isinstance(config, dict):
            config = self.config_class(**config)
        self.config = config.resolve()
        self._transport = transport

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the credentials needed for any request are present."""

    @abstractmethod
    async def _build_dashboard(
        self,
        period: str,
        comparison: ComparisonSpec | None,
        grouping: str | None,
    ) -> DashboardData | None:
        """Fetch and assemble one dashboard; None if the summary fetch failed."""

    async def get_dashboard_data(
        self,
        period: str = DEFAULT_PERIOD,
        comparison: ComparisonSpec | dict | None = None,
        grouping: str | None = None,
    ) -> DashboardData | None:
        """Dashboard data for ``period``, or None if it could not be produced.

        Args:
            period: Period token (7d, lastMonth, ...) or "YYYY-MM-DD,YYYY-MM-DD"
            comparison: Window to compute changes against; omit for no changes
            grouping: Time-series bucket (hour, day, week, month, year)

        Returns:
            DashboardData, possibly with empty breakdowns when secondary
            fetches failed. None on missing credentials or when the summary
            stats could not be fetched.
        """
        if not self.is_configured:
            logger.warning(f"{self.name}: API credentials are not configured")
            return None

        try:
            if isinstance(comparison, dict):
                comparison = ComparisonSpec.model_validate(comparison)
            return await self._build_dashboard(period, comparison, grouping)
        except Exception:
            logger.exception(f"{self.name}: error fetching dashboard data")
            return None

    def track_event(self, event_name: str, props: dict[str, Any] | None = None) -> None:
        """Tracking happens client-side through the vendor's script."""
        logger.info(f"{self.name}: track event {event_name} {props or {}}")

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform one request and return the decoded JSON body.

        Raises:
            ProviderRequestError: On network failure or non-2xx status
        """
        logger.debug(f"{self.name} {method} {url}")
        timeout = getattr(self.config, "timeout", DEFAULT_TIMEOUT)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await client.request(method, url, params=params, json=json, headers=headers)
            except httpx.HTTPError as e:
                raise ProviderRequestError(f"{self.name} request failed: {e!r}") from e

        if response.is_error:
            logger.error(f"{self.name} API error: {response.status_code} {response.reason_phrase}")
            logger.debug(f"Response: {response.text[:500]}")
            raise ProviderRequestError(
                f"{self.name} API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.name} returned a non-JSON body") from e

    def _check_payload(self, payload: Any) -> None:
        """Raise ProviderResponseError for an error reported inside a 2xx body."""

    async def _fetch(
        self,
        label: str,
        schema: Any,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any | None:
        """Request and validate; None on transport or validation failure."""
        try:
            payload = await self._request(method, url, **kwargs)
            self._check_payload(payload)
        except ProviderError as e:
            logger.error(f"Error fetching {self.name} {label}: {e}")
            return None
        return parse_response(schema, payload, label=f"{self.name} {label}")
