"""Map raw upstream records onto the canonical schema.

The upstream API is inconsistent across endpoints: the same value may arrive
as ``viewCountText: "1.2M views"``, ``viewCount: "1200000"`` or
``views: 1200000``. Alias lists below are tried in order; the normalizer
never raises for data reasons, and a malformed field degrades to its default.
"""

import re
from typing import Any, Iterable, Mapping

import structlog

from tubepulse.normalization.extractor import FieldExtractor
from tubepulse.normalization.parsers import (
    THUMBNAIL_STRING_FIELDS,
    detect_kind,
    extract_hashtags,
    extract_thumbnail,
    last_image_url,
    normalize_duration,
    normalize_published_at,
    parse_number,
)
from tubepulse.normalization.schema import ChannelInfo, Video, VideoKind

logger = structlog.get_logger(__name__)


# =============================================================================
# Field aliases (priority order)
# =============================================================================

VIDEO_ID_FIELDS = ("videoId", "id", "vid", "video_id", "id.videoId")
VIDEO_URL_FIELDS = ("url", "link", "watchUrl", "shareUrl")
CHANNEL_ID_FIELDS = ("channelId", "channel_id", "channel.id", "channel.channelId")
CHANNEL_TITLE_FIELDS = ("channelTitle", "channel.name", "channel.title", "author")
TITLE_FIELDS = ("title", "snippet.title")
DESCRIPTION_FIELDS = ("description", "descriptionSnippet", "snippet.description")
VIEW_COUNT_FIELDS = ("viewCountText", "viewCount", "views", "stats.views", "statistics.viewCount")
LIKE_COUNT_FIELDS = ("likeCount", "likes", "stats.likes", "statistics.likeCount")
COMMENT_COUNT_FIELDS = (
    "commentCount",
    "commentCountText",
    "comments",
    "stats.comments",
    "statistics.commentCount",
)
SUBSCRIBER_COUNT_FIELDS = (
    "subscriberCount",
    "subscriberCountText",
    "channel.subscribers",
    "channel.subscriberCount",
    "channel.subscriberCountText",
)
VIDEO_COUNT_FIELDS = ("videoCount", "videosCount", "videosCountText", "videos")
RELATIVE_DATE_FIELDS = ("publishedTimeText", "publishedText", "uploaded", "publishedTime")
ABSOLUTE_DATE_FIELDS = ("publishedAt", "publishDate", "uploadDate")
DURATION_FIELDS = ("lengthText", "duration", "lengthSeconds")
KEYWORD_FIELDS = ("keywords", "tags")

CHANNEL_INFO_ID_FIELDS = ("channel_id", "channelId", "id")
CHANNEL_INFO_SUBSCRIBER_FIELDS = ("subscriberCountText", "subscriberCount", "subscribers")
CHANNEL_INFO_VIDEO_COUNT_FIELDS = ("videosCountText", "videosCount", "videoCount", "videos")
CHANNEL_INFO_HANDLE_FIELDS = ("channelHandle", "handle", "customUrl")

# 11-character id in watch / short / shortened URLs
_WATCH_ID_RE = re.compile(
    r"(?:[?&]v=|youtu\.be/|/shorts/|/embed/)([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)


# =============================================================================
# Helpers
# =============================================================================


def _count(extractor: FieldExtractor, *paths: str) -> int:
    """First numeric or non-blank string alias, parsed as a count."""
    for path in paths:
        value = extractor.get_value(path)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return parse_number(value)
        if isinstance(value, str) and value.strip():
            return parse_number(value)
    return 0


def _duration(extractor: FieldExtractor) -> str:
    for path in DURATION_FIELDS:
        duration = normalize_duration(extractor.get_value(path))
        if duration:
            return duration
    return ""


def video_id_from_url(url: str) -> str:
    """Extract an 11-character video id from a watch URL; ``""`` if absent."""
    match = _WATCH_ID_RE.search(url or "")
    return match.group(1) if match else ""


def _keywords(extractor: FieldExtractor, title: str) -> set[str]:
    keywords: set[str] = set()
    for item in extractor.get_array(*KEYWORD_FIELDS):
        if isinstance(item, str) and item.strip():
            keywords.add(item.strip())
    keywords.update(extract_hashtags(title))
    return keywords


# =============================================================================
# Videos
# =============================================================================


def normalize_video(raw: Any) -> Video:
    """Normalize one search/trending/detail item into a Video.

    An item whose id cannot be resolved comes back with ``id == ""``;
    callers drop it.
    """
    extractor = FieldExtractor(raw)
    kind = detect_kind(raw)

    channel_id = extractor.get_string(*CHANNEL_ID_FIELDS)

    if kind is VideoKind.CHANNEL:
        record_id = channel_id or extractor.get_string("id")
        channel_id = channel_id or record_id
    else:
        record_id = extractor.get_string(*VIDEO_ID_FIELDS)
        if not record_id:
            # Last resort: id embedded in the watch URL
            record_id = video_id_from_url(extractor.get_string(*VIDEO_URL_FIELDS))

    title = extractor.get_string(*TITLE_FIELDS)

    video = Video(
        id=record_id,
        kind=kind,
        title=title,
        description=extractor.get_string(*DESCRIPTION_FIELDS),
        thumbnail_url=extract_thumbnail(raw),
        keywords=_keywords(extractor, title),
        channel_id=channel_id,
        channel_title=extractor.get_string(*CHANNEL_TITLE_FIELDS)
        or (title if kind is VideoKind.CHANNEL else ""),
        subscriber_count=_count(extractor, *SUBSCRIBER_COUNT_FIELDS),
        view_count=_count(extractor, *VIEW_COUNT_FIELDS),
        like_count=_count(extractor, *LIKE_COUNT_FIELDS),
        comment_count=_count(extractor, *COMMENT_COUNT_FIELDS),
        published_at=normalize_published_at(
            extractor.get_string(*RELATIVE_DATE_FIELDS),
            extractor.get_string(*ABSOLUTE_DATE_FIELDS),
        ),
        duration=_duration(extractor),
        video_count=_count(extractor, *VIDEO_COUNT_FIELDS) if kind is VideoKind.CHANNEL else None,
    )

    logger.debug(
        "video_normalized",
        video_id=video.id[:5],
        kind=video.kind.value,
        view_count=video.view_count,
        duration=video.duration,
    )
    return video


def normalize_videos(
    items: Iterable[Any],
    kind: VideoKind | None = None,
) -> list[Video]:
    """Normalize a result page.

    Shorts listings are flattened, id-less records dropped, and when ``kind``
    is given only matching records are kept.
    """
    videos: list[Video] = []
    for item in flatten_shorts_listing(items):
        try:
            video = normalize_video(item)
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            logger.warning("video_normalization_failed", error=str(e))
            continue

        if not video.id:
            logger.debug("video_dropped_without_id", title=video.title[:40])
            continue
        if kind is not None and video.kind is not kind:
            logger.debug(
                "video_kind_mismatch",
                expected=kind.value,
                actual=video.kind.value,
                title=video.title[:40],
            )
            continue
        videos.append(video)
    return videos


# =============================================================================
# Channels
# =============================================================================


def unwrap_channel_payload(raw: Any) -> Mapping[str, Any]:
    """Channel details may sit under ``meta`` or as the first ``data`` item."""
    extractor = FieldExtractor(raw)

    meta = extractor.get_mapping("meta")
    if meta:
        return meta

    data = extractor.get_array("data")
    if data and isinstance(data[0], Mapping):
        return data[0]

    return extractor.data


def normalize_channel(raw: Any) -> ChannelInfo:
    """Normalize a channel-detail response into ChannelInfo."""
    data = unwrap_channel_payload(raw)
    extractor = FieldExtractor(data)

    thumbnail = last_image_url(extractor.get_array("avatar", "thumbnail", "thumbnails"))
    if not thumbnail:
        thumbnail = extractor.get_string(*THUMBNAIL_STRING_FIELDS)

    banner = last_image_url(extractor.get_array("banner", "image.banner"))
    if not banner:
        banner = extractor.get_string("banner", "bannerUrl")

    return ChannelInfo(
        channel_id=extractor.get_string(*CHANNEL_INFO_ID_FIELDS),
        title=extractor.get_string("title", "name"),
        description=extractor.get_string("description"),
        subscriber_count=_count(extractor, *CHANNEL_INFO_SUBSCRIBER_FIELDS),
        video_count=_count(extractor, *CHANNEL_INFO_VIDEO_COUNT_FIELDS),
        thumbnail_url=thumbnail,
        banner_url=banner,
        country=extractor.get_string("country") or None,
        verified=extractor.get_bool("verified", "isVerified"),
        handle=extractor.get_string(*CHANNEL_INFO_HANDLE_FIELDS),
    )


# =============================================================================
# Response envelopes
# =============================================================================

DATA_ARRAY_FIELDS = ("data", "contents", "videos", "results")


def extract_data_array(response: Any) -> list[Any]:
    """Pull the item list out of a response envelope."""
    if isinstance(response, list):
        return response
    return FieldExtractor(response).get_array(*DATA_ARRAY_FIELDS)


def flatten_shorts_listing(items: Iterable[Any]) -> list[Any]:
    """Inline items nested inside ``shorts_listing`` groups."""
    flattened: list[Any] = []
    for item in items:
        extractor = FieldExtractor(item)
        if extractor.get_string("type") == "shorts_listing":
            flattened.extend(
                nested
                for nested in extractor.get_array("data")
                if FieldExtractor(nested).get_string("type") != "shorts_listing"
            )
        else:
            flattened.append(item)
    return flattened
