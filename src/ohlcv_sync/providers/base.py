"""Provider adapter protocol and the shared HTTP adapter base.

Architecture
------------
Every external market-data API is wrapped by one adapter that turns its
responses into the provider-neutral ``PricePoint`` contract:

    HTTP API → adapter (→ rate limiter) → list[PricePoint] | ProviderFailure

- **ProviderAdapter** is the protocol the orchestrator depends on. Nothing
  upstream knows which concrete API is behind it.

- **HttpProviderAdapter** holds what the concrete adapters share: the httpx
  client, the rate limiter, HTTP status classification, and output
  normalization (range filter, date dedup, ascending sort).

Adapters never raise for provider problems. Transport errors, HTTP error
statuses and error envelopes are all returned as ``ProviderFailure`` values
tagged with an ``ErrorKind``. A 200 payload whose shape breaks a parser
becomes an ``INVALID`` failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, timedelta
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx

from ohlcv_sync.core.config import ProviderConfig
from ohlcv_sync.core.models import (
    FALLBACK_START_DATE,
    ErrorKind,
    PricePoint,
    ProviderFailure,
    ProviderIdentity,
)
from ohlcv_sync.providers.rate_limiter import RateLimiter, build_rate_limiter

logger = logging.getLogger(__name__)

FetchOutcome = list[PricePoint] | ProviderFailure

_HEALTH_CHECK_DAYS = 5

# Raised when a 200 response is not shaped the way a parser expects
_SHAPE_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Consumer-facing interface of a market-data provider."""

    @property
    def name(self) -> str: ...

    @property
    def identity(self) -> ProviderIdentity: ...

    @property
    def is_configured(self) -> bool: ...

    async def fetch_range(self, symbol: str, start: date, end: date) -> FetchOutcome:
        """Fetch daily bars for ``symbol`` between ``start`` and ``end`` inclusive.

        Returns
        -------
        list[PricePoint] | ProviderFailure
            Ascending, unique-by-date points, or a classified failure.
            An empty list means the provider has no data for the window.
        """
        ...

    async def earliest_available(self, symbol: str) -> date:
        """Best-effort first trading day. Never raises."""
        ...

    async def health_check(self) -> bool:
        """Cheap reachability probe. Never raises."""
        ...

    async def aclose(self) -> None: ...


def classify_status(status_code: int) -> ErrorKind | None:
    """Map an HTTP status onto the failure taxonomy (None for success)."""
    if 200 <= status_code < 300:
        return None
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 408 or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.INVALID


def normalize_points(points: Iterable[PricePoint], start: date, end: date) -> list[PricePoint]:
    """Clip to ``[start, end]``, keep the first point per date, sort ascending."""
    by_date: dict[date, PricePoint] = {}
    for point in points:
        if point.date < start or point.date > end:
            continue
        by_date.setdefault(point.date, point)
    return [by_date[d] for d in sorted(by_date)]


def parse_float(raw: Any) -> float | None:
    """Parse a numeric field. Missing/blank gives None; garbage raises ValueError."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError(f"not a number: {raw!r}")
    return float(raw)


def parse_volume(raw: Any) -> int | None:
    """Parse a volume field, tolerating float-formatted strings like ``"1200.0"``."""
    value = parse_float(raw)
    if value is None:
        return None
    if value != value or value < 0:  # NaN or negative
        raise ValueError(f"invalid volume: {raw!r}")
    return int(value)


class HttpProviderAdapter:
    """Base class for adapters that speak JSON over HTTP GET.

    Subclasses implement ``_fetch`` and, when the API supports it,
    ``_lookup_earliest``.

    Parameters
    ----------
    config : ProviderConfig
        Base URL, API key, priority, timeout and rate budget.
    limiter : RateLimiter | None
        Shared limiter. Built from ``config.rate_limit`` if None.
    client : httpx.AsyncClient | None
        Injected client (useful for testing). The adapter only closes
        clients it created itself.
    fallback_start : date
        Returned by ``earliest_available`` when no better answer exists.
    health_check_symbol : str
        Liquid symbol probed by ``health_check``.
    today : Callable[[], date]
        Clock for ``health_check``.
    """

    provider_name: ClassVar[str] = "http"
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self,
        config: ProviderConfig,
        *,
        limiter: RateLimiter | None = None,
        client: httpx.AsyncClient | None = None,
        fallback_start: date = FALLBACK_START_DATE,
        health_check_symbol: str = "SPY",
        today: Callable[[], date] = date.today,
    ) -> None:
        self._config = config
        self._limiter = limiter or build_rate_limiter(config.rate_limit, name=self.provider_name)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )
        self._base_url = config.base_url.rstrip("/")
        self._fallback_start = fallback_start
        self._health_symbol = health_check_symbol
        self._today = today

        if self.requires_api_key and not self.is_configured:
            logger.warning("%s API key not configured; requests will be skipped", self.name)

    async def __aenter__(self) -> HttpProviderAdapter:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    # --- Identity ---

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def identity(self) -> ProviderIdentity:
        return ProviderIdentity(name=self.name, priority=self._config.priority)

    @property
    def is_configured(self) -> bool:
        if not self.requires_api_key:
            return True
        return bool(self._config.api_key and self._config.api_key.strip())

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    # --- Public operations ---

    async def fetch_range(self, symbol: str, start: date, end: date) -> FetchOutcome:
        if not self.is_configured:
            return self._failure(ErrorKind.CONFIG_MISSING, f"{self.name} API key not configured")
        if start > end:
            return []

        logger.debug("%s: fetching %s from %s to %s", self.name, symbol, start, end)
        try:
            outcome = await self._fetch(symbol, start, end)
        except _SHAPE_ERRORS as e:
            outcome = self._failure(
                ErrorKind.INVALID, f"unexpected response shape: {type(e).__name__}: {e}"
            )
        if isinstance(outcome, ProviderFailure):
            logger.warning("%s: %s for %s (%s)", self.name, outcome.kind.value, symbol, outcome.message)
            return outcome
        return normalize_points(outcome, start, end)

    async def earliest_available(self, symbol: str) -> date:
        if not self.is_configured:
            return self._fallback_start
        try:
            earliest = await self._lookup_earliest(symbol)
        except _SHAPE_ERRORS as e:
            logger.warning(
                "%s: malformed earliest-date response for %s: %s: %s",
                self.name,
                symbol,
                type(e).__name__,
                e,
            )
            earliest = None
        if earliest is None:
            logger.debug("%s: no earliest date for %s, using fallback %s", self.name, symbol, self._fallback_start)
            return self._fallback_start
        return earliest

    async def health_check(self) -> bool:
        if not self.is_configured:
            return False
        end = self._today()
        start = end - timedelta(days=_HEALTH_CHECK_DAYS)
        try:
            outcome = await self.fetch_range(self._health_symbol, start, end)
        except Exception as e:
            logger.warning("%s health check failed: %s", self.name, e)
            return False
        if isinstance(outcome, ProviderFailure):
            logger.warning("%s health check failed: %s", self.name, outcome.message)
            return False
        return bool(outcome)

    # --- Subclass hooks ---

    async def _fetch(self, symbol: str, start: date, end: date) -> FetchOutcome:
        raise NotImplementedError

    async def _lookup_earliest(self, symbol: str) -> date | None:
        """Provider-specific earliest-date lookup. None when unsupported."""
        return None

    # --- HTTP plumbing ---

    def _failure(
        self, kind: ErrorKind, message: str, status_code: int | None = None
    ) -> ProviderFailure:
        return ProviderFailure(
            kind=kind, provider=self.name, message=message, status_code=status_code
        )

    async def _get_json(
        self,
        path: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any | ProviderFailure:
        """GET ``path`` through the rate limiter and decode the JSON body.

        Transport errors and non-2xx statuses come back as ``ProviderFailure``.
        """
        await self._limiter.acquire()
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            return self._failure(ErrorKind.TRANSIENT, f"timeout calling {path}: {e}")
        except httpx.HTTPError as e:
            return self._failure(ErrorKind.TRANSIENT, f"transport error calling {path}: {e}")

        kind = classify_status(response.status_code)
        if kind is not None:
            return self._failure(
                kind,
                f"HTTP {response.status_code} from {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return self._failure(
                ErrorKind.INVALID,
                f"undecodable JSON from {path}",
                status_code=response.status_code,
            )
