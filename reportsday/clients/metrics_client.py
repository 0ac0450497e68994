"""
PBX metrics report API client.

Wraps the provider's report endpoint, which takes the whole query in the URL
path:

    <base>/<start>/<end>/<queue>/<number>/<agent>/<report>/<quiz_id>/<tz>

Dates are rendered as "Fri May 22 2020 00:00:00 GMT -0300" and
percent-encoded. Authentication is a token sent in both the ``key`` and
``Chave`` headers.

The client fails closed: transport errors, timeouts and any HTTP status
>= 400 are logged and turned into ``None`` ("no data") for the caller.
404 (wrong endpoint) and 417 (authentication or request format) get their
own diagnostic messages.

Usage:
    client = MetricsClient.from_settings(get_settings())
    data = await client.fetch_aggregate(start, end)
    await client.aclose()
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Collection, Dict, List, Optional, Union
from urllib.parse import quote

import httpx

from reportsday.core.config import Settings


logger = logging.getLogger(__name__)


_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Status codes with a dedicated log message
STATUS_NOT_FOUND = 404
STATUS_EXPECTATION_FAILED = 417

MetricsResponse = Union[Dict[str, Any], List[Any]]


@dataclass(frozen=True)
class MetricsFilters:
    """Report filters sent as URL path segments."""
    queue: str = "all_queues"
    number: str = "all_numbers"
    agent: str = "all_agent"
    report: str = "report_01"
    quiz_id: str = "undefined"


def format_date_for_api(moment: datetime) -> str:
    """
    Render an aware datetime the way the provider expects, URL-encoded.

    Example:
        >>> format_date_for_api(datetime(2020, 5, 22, tzinfo=timezone(timedelta(hours=-3))))
        'Fri%20May%2022%202020%2000%3A00%3A00%20GMT%20-0300'
    """
    offset = moment.strftime("%z") or "+0000"
    text = (
        f"{_WEEKDAYS[moment.weekday()]} {_MONTHS[moment.month - 1]} "
        f"{moment.day:02d} {moment.year} {moment.strftime('%H:%M:%S')} GMT {offset}"
    )
    return quote(text, safe="")


class MetricsClient:
    """Async client for the PBX metrics report endpoint."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timezone_offset: str = "-3",
        filters: Optional[MetricsFilters] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._token = token or ""
        self._timezone_offset = timezone_offset
        self._filters = filters or MetricsFilters()
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "MetricsClient":
        return cls(
            base_url=settings.metrics_api_url,
            token=settings.metrics_api_token,
            timezone_offset=settings.metrics_timezone_offset,
            filters=MetricsFilters(
                queue=settings.metrics_queue,
                number=settings.metrics_number,
                agent=settings.metrics_agent,
                report=settings.metrics_report,
                quiz_id=settings.metrics_quiz_id,
            ),
            timeout=settings.metrics_timeout_seconds,
            client=client,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._token)

    @property
    def filters(self) -> MetricsFilters:
        return self._filters

    def _auth_headers(self) -> Dict[str, str]:
        return {"key": self._token, "Chave": self._token}

    def build_path(self, start: datetime, end: datetime, filters: Optional[MetricsFilters] = None) -> str:
        """Build the path-encoded report query for ``start``..``end``."""
        f = filters or self._filters
        segments = [
            format_date_for_api(start),
            format_date_for_api(end),
            f.queue,
            f.number,
            f.agent,
            f.report,
            f.quiz_id,
            self._timezone_offset,
        ]
        return "/" + "/".join(segments)

    async def fetch_aggregate(
        self,
        start: datetime,
        end: datetime,
        filters: Optional[MetricsFilters] = None,
        quiet_statuses: Collection[int] = (),
    ) -> Optional[MetricsResponse]:
        """
        Fetch report data for a time window.

        Args:
            start: Window start (aware datetime)
            end: Window end (aware datetime)
            filters: Overrides for the default report filters
            quiet_statuses: HTTP statuses that are known to be noisy; they
                are logged at debug level only but still resolve to None

        Returns:
            The aggregate object (dict) or a list of call rows, or None when
            the provider is unreachable, rejects the request, or returns a
            body that is neither.
        """
        if not self.is_configured:
            logger.warning("Metrics API not configured (METRICS_API_URL / METRICS_API_TOKEN)")
            return None

        path = self.build_path(start, end, filters)
        logger.debug(f"Fetching metrics {start.isoformat()} -> {end.isoformat()}")

        try:
            response = await self._client.get(path, headers=self._auth_headers())
        except httpx.TimeoutException:
            logger.error(f"Metrics API timed out after {self._timeout}s")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Metrics API unreachable: {e}")
            return None

        status = response.status_code
        if status >= 400:
            if status in quiet_statuses:
                logger.debug(f"Metrics API returned {status} (suppressed)")
            elif status == STATUS_NOT_FOUND:
                logger.error("Metrics API returned 404 - endpoint not found, check METRICS_API_URL")
            elif status == STATUS_EXPECTATION_FAILED:
                logger.error("Metrics API returned 417 - check the token and the request format")
            else:
                logger.error(f"Metrics API returned status {status}: {response.text[:200]}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Metrics API returned a non-JSON body")
            return None

        if data is None:
            logger.info("Metrics API returned no data")
            return None
        if not isinstance(data, (dict, list)):
            logger.error(f"Unexpected metrics payload type: {type(data).__name__}")
            return None
        return data

    async def test_connection(self) -> bool:
        """Return True when the base endpoint answers with a non-error status."""
        try:
            response = await self._client.get("", headers=self._auth_headers(), timeout=10.0)
        except httpx.HTTPError as e:
            logger.error(f"Metrics API connection test failed: {e}")
            return False
        return response.status_code < 400

    def with_filters(self, **overrides: str) -> MetricsFilters:
        """Copy of the default filters with some segments replaced."""
        return replace(self._filters, **overrides)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
