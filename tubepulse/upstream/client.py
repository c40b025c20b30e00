"""Async client for the upstream video API (RapidAPI YT-API).

Every HTTP call is admitted through the shared RequestQueue and retried with
backoff on transient failures (429, 5xx, timeouts, network errors). Responses
are normalized before they leave this module.

Example:
    async with VideoApiClient(settings, queue) as client:
        videos = await client.search("캠핑 브이로그", kind=VideoKind.VIDEO)
        channel = await client.channel_info(videos[0].channel_id)
"""

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

import httpx
import structlog

from tubepulse.config.settings import Settings, get_settings
from tubepulse.core.exceptions import (
    ConfigurationError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from tubepulse.core.request_queue import RequestQueue
from tubepulse.core.retry import RetryPolicy, retry_async
from tubepulse.monitoring.metrics import track_upstream_request
from tubepulse.normalization import (
    ChannelInfo,
    Video,
    VideoKind,
    extract_data_array,
    normalize_channel,
    normalize_video,
    normalize_videos,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_SEARCH_PAGES = 2
# Stop paginating when the upstream reports fewer remaining calls than this
MIN_RATE_LIMIT_REMAINING = 5

UPLOAD_DATE_FILTERS = ("hour", "today", "week", "month", "year")
TRENDING_SECTIONS = ("now", "music", "games", "movies")

# kind -> value of the upstream ``type`` parameter
SEARCH_TYPES = {
    VideoKind.VIDEO: "video",
    VideoKind.SHORT: "shorts",
    VideoKind.CHANNEL: "channel",
}

GEO_LANGUAGES = {
    "KR": "ko",
    "JP": "ja",
    "US": "en",
    "GB": "en",
    "DE": "de",
    "VN": "vi",
}

# Hiragana and katakana only; kanji is shared with Chinese and Korean hanja
_KANA_RE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF]")
JAPANESE_RATIO_THRESHOLD = 0.3

CHANNEL_CACHE_TTL_SECONDS = 15 * 60
CHANNEL_CACHE_MAX_ENTRIES = 1000


# =============================================================================
# Helpers
# =============================================================================


@dataclass(frozen=True)
class RateLimitInfo:
    """Values of the upstream's x-ratelimit-* response headers."""

    remaining: Optional[int] = None
    reset: Optional[int] = None
    limit: Optional[int] = None

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "RateLimitInfo":
        return cls(
            remaining=_int_header(headers, "x-ratelimit-requests-remaining"),
            reset=_int_header(headers, "x-ratelimit-requests-reset"),
            limit=_int_header(headers, "x-ratelimit-requests-limit"),
        )


def _int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    try:
        return int(headers[name])
    except (KeyError, ValueError):
        return None


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return default
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    delay = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(delay, default)


def detect_language(query: str) -> tuple[str, str]:
    """Pick (geo, lang) for a search query: Japanese if kana-heavy, else Korean."""
    if query and len(_KANA_RE.findall(query)) / len(query) >= JAPANESE_RATIO_THRESHOLD:
        return "JP", "ja"
    return "KR", "ko"


@dataclass
class SearchPage:
    """One page of search results and where to continue from."""

    videos: list[Video]
    continuation: Optional[str]
    rate_limit: RateLimitInfo


class ChannelCache:
    """TTL cache of channel details with a size cap.

    Expired entries are purged on every write; past ``max_entries`` the
    least recently written entries are evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = CHANNEL_CACHE_TTL_SECONDS,
        max_entries: int = CHANNEL_CACHE_MAX_ENTRIES,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[float, ChannelInfo]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, channel_id: str) -> Optional[ChannelInfo]:
        entry = self._entries.get(channel_id)
        if entry is None:
            return None
        stored_at, info = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[channel_id]
            return None
        return info

    def set(self, channel_id: str, info: ChannelInfo) -> None:
        now = self._clock()
        expired = [cid for cid, (at, _) in self._entries.items() if now - at >= self._ttl]
        for cid in expired:
            del self._entries[cid]

        self._entries.pop(channel_id, None)
        self._entries[channel_id] = (now, info)
        while len(self._entries) > self._max_entries:
            del self._entries[next(iter(self._entries))]


# =============================================================================
# Client
# =============================================================================


class VideoApiClient:
    """Async client for the RapidAPI YT-API endpoints.

    Example:
        client = VideoApiClient(settings, queue)
        async with client:
            trending = await client.trending("music", geo="JP")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        queue: Optional[RequestQueue] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        channel_cache: Optional[ChannelCache] = None,
    ):
        """Initialize the client.

        Args:
            settings: Application settings. Loaded with get_settings() if omitted.
            queue: Shared admission queue. A private one sized from settings
                is created if omitted.
            retry_policy: Retry policy for transient failures.
            transport: httpx transport override, used by tests.
            channel_cache: Cache for channel_info results.
        """
        self._settings = settings or get_settings()
        self._queue = queue or RequestQueue(self._settings.max_concurrent_requests)
        self._retry_policy = retry_policy or RetryPolicy.from_settings(self._settings)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._channel_cache = channel_cache if channel_cache is not None else ChannelCache()

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    async def __aenter__(self) -> "VideoApiClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            api_key = self._settings.rapidapi_key
            if not api_key:
                raise ConfigurationError("RapidAPI key not configured", "rapidapi_key")
            self._client = httpx.AsyncClient(
                base_url=self._settings.api_base_url,
                timeout=httpx.Timeout(self._settings.request_timeout_seconds),
                headers={
                    "x-rapidapi-key": api_key.get_secret_value(),
                    "x-rapidapi-host": self._settings.rapidapi_host,
                },
                transport=self._transport,
            )
        return self._client

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any],
    ) -> tuple[Any, RateLimitInfo]:
        """GET ``endpoint`` through the queue with retries.

        Each attempt takes its own queue slot, so a request waiting out a
        backoff does not hold capacity.

        Raises:
            UpstreamRateLimitError: HTTP 429 after all retries.
            UpstreamTimeoutError: Timed out after all retries.
            UpstreamUnavailableError: 5xx or network failure after all retries.
            UpstreamAuthError: HTTP 401/403.
            UpstreamNotFoundError: HTTP 404.
            UpstreamError: Any other non-success status.
        """
        client = await self._ensure_client()

        async def attempt() -> tuple[Any, RateLimitInfo]:
            return await self._queue.enqueue(lambda: self._send(client, endpoint, params))

        return await retry_async(
            attempt,
            self._retry_policy,
            context={"endpoint": endpoint},
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        params: dict[str, Any],
    ) -> tuple[Any, RateLimitInfo]:
        details = {"endpoint": endpoint}

        with track_upstream_request(endpoint):
            try:
                response = await client.get(f"/{endpoint}", params=params)
            except httpx.TimeoutException as e:
                logger.warning("upstream_timeout", endpoint=endpoint, error=str(e))
                raise UpstreamTimeoutError(f"Request timeout: {e}", 0, details) from e
            except httpx.RequestError as e:
                logger.warning("upstream_request_error", endpoint=endpoint, error=str(e))
                raise UpstreamUnavailableError(f"Request failed: {e}", 0, details) from e

            rate_limit = RateLimitInfo.from_headers(response.headers)
            status = response.status_code

            if status == 429:
                retry_after = parse_retry_after(
                    response.headers.get("retry-after"),
                    self._settings.rate_limit_delay_seconds,
                )
                logger.warning(
                    "upstream_rate_limited",
                    endpoint=endpoint,
                    retry_after=retry_after,
                    remaining=rate_limit.remaining,
                )
                raise UpstreamRateLimitError(
                    "Rate limited by upstream API",
                    status,
                    details,
                    retry_after=retry_after,
                )
            elif status in (401, 403):
                raise UpstreamAuthError(
                    "Upstream API rejected credentials",
                    status,
                    details,
                )
            elif status == 404:
                raise UpstreamNotFoundError(
                    f"Resource not found: {endpoint}",
                    status,
                    details,
                )
            elif status >= 500:
                logger.warning("upstream_server_error", endpoint=endpoint, status_code=status)
                raise UpstreamUnavailableError(
                    f"Upstream server error {status}",
                    status,
                    details,
                )
            elif status >= 400:
                logger.error("upstream_api_error", endpoint=endpoint, status_code=status)
                raise UpstreamError(f"API error {status}", status, details)

            try:
                data = response.json() if response.content else {}
            except ValueError as e:
                raise UpstreamUnavailableError(
                    "Upstream returned invalid JSON",
                    status,
                    details,
                ) from e

        return data, rate_limit

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def search_page(
        self,
        query: str,
        kind: VideoKind = VideoKind.VIDEO,
        upload_date: str = "week",
        channel: Optional[str] = None,
        continuation: Optional[str] = None,
    ) -> SearchPage:
        """Fetch and normalize one page of search results."""
        geo, lang = detect_language(query)
        params: dict[str, Any] = {
            "query": query,
            "type": SEARCH_TYPES[kind],
            "upload_date": upload_date,
            "sort_by": "views",
            "geo": geo,
            "lang": lang,
            "local": "1",
        }
        if channel:
            params["channel"] = channel
        if continuation:
            params["token"] = continuation

        data, rate_limit = await self._request("search", params)
        videos = normalize_videos(extract_data_array(data), kind=kind)
        next_token = data.get("continuation") if isinstance(data, dict) else None

        return SearchPage(videos=videos, continuation=next_token or None, rate_limit=rate_limit)

    async def search(
        self,
        query: str,
        kind: VideoKind = VideoKind.VIDEO,
        upload_date: str = "week",
        limit: int = 40,
        channel: Optional[str] = None,
    ) -> list[Video]:
        """Search videos, shorts or channels.

        Follows the continuation token for at most two pages, and stops early
        once ``limit`` results are collected or the upstream's remaining
        rate-limit budget runs low.

        Args:
            query: Search text (1-100 characters).
            kind: Which kind of result to return; others are filtered out.
            upload_date: One of hour, today, week, month, year.
            limit: Maximum number of results.
            channel: Optional channel filter.
        """
        query = (query or "").strip()
        if not 1 <= len(query) <= 100:
            raise ValueError("query must be 1-100 characters")
        if upload_date not in UPLOAD_DATE_FILTERS:
            raise ValueError(f"upload_date must be one of {UPLOAD_DATE_FILTERS}")
        if limit < 1:
            raise ValueError("limit must be at least 1")

        start = time.perf_counter()
        videos: list[Video] = []
        continuation: Optional[str] = None
        pages = 0

        while len(videos) < limit and pages < MAX_SEARCH_PAGES:
            page = await self.search_page(query, kind, upload_date, channel, continuation)
            pages += 1
            videos.extend(page.videos)
            continuation = page.continuation

            logger.info(
                "search_page_fetched",
                query=query,
                kind=kind.value,
                page=pages,
                items=len(page.videos),
                total=len(videos),
                rate_limit_remaining=page.rate_limit.remaining,
            )

            if not continuation:
                break
            remaining = page.rate_limit.remaining
            if remaining is not None and remaining < MIN_RATE_LIMIT_REMAINING:
                logger.warning(
                    "search_stopped_rate_limit_low",
                    query=query,
                    remaining=remaining,
                    total=len(videos),
                )
                break

        logger.info(
            "search_completed",
            query=query,
            kind=kind.value,
            pages=pages,
            items_returned=min(len(videos), limit),
            duration_ms=round((time.perf_counter() - start) * 1000),
        )
        return videos[:limit]

    async def trending(self, section: str = "now", geo: str = "KR") -> list[Video]:
        """Trending videos for a section (now, music, games, movies) and region."""
        section = section.lower()
        if section not in TRENDING_SECTIONS:
            raise ValueError(f"section must be one of {TRENDING_SECTIONS}")
        geo = geo.upper()

        params: dict[str, Any] = {"geo": geo, "lang": GEO_LANGUAGES.get(geo, "ko")}
        # The upstream defaults to "now"
        if section != "now":
            params["type"] = section

        data, rate_limit = await self._request("trending", params)
        videos = normalize_videos(extract_data_array(data))

        logger.info(
            "trending_fetched",
            section=section,
            geo=geo,
            items_returned=len(videos),
            rate_limit_remaining=rate_limit.remaining,
        )
        return videos

    async def channel_info(self, channel_id: str) -> ChannelInfo:
        """Channel details.

        Never raises for upstream failures: an empty ChannelInfo carrying the
        requested id is returned instead.
        """
        cached = self._channel_cache.get(channel_id)
        if cached is not None:
            return cached

        try:
            data, _ = await self._request("channel/about", {"id": channel_id})
        except UpstreamError as e:
            logger.warning(
                "channel_info_unavailable",
                channel_id=channel_id,
                status_code=e.status_code,
                error=str(e),
            )
            return ChannelInfo(channel_id=channel_id)

        info = normalize_channel(data)
        if not info.channel_id:
            info = info.model_copy(update={"channel_id": channel_id})
        self._channel_cache.set(channel_id, info)
        return info

    async def channels_info(self, channel_ids: list[str]) -> dict[str, ChannelInfo]:
        """Channel details for several channels, fetched concurrently.

        Concurrency is bounded by the request queue.
        """
        unique_ids = list(dict.fromkeys(channel_ids))
        infos = await asyncio.gather(*(self.channel_info(cid) for cid in unique_ids))
        return dict(zip(unique_ids, infos))

    async def video_info(self, video_id: str) -> Video:
        """Full details of one video or short."""
        data, _ = await self._request("video/info", {"id": video_id})
        video = normalize_video(data)
        if not video.id:
            video = video.model_copy(update={"id": video_id})
        return video
