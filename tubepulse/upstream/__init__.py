"""Client for the upstream video API."""

from tubepulse.upstream.client import (
    ChannelCache,
    RateLimitInfo,
    SearchPage,
    VideoApiClient,
    detect_language,
    parse_retry_after,
)

__all__ = [
    "ChannelCache",
    "RateLimitInfo",
    "SearchPage",
    "VideoApiClient",
    "detect_language",
    "parse_retry_after",
]
