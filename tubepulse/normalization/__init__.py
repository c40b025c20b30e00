"""Normalization of upstream API responses.

Provides the canonical schema and the functions that map schema-unstable
upstream records onto it.
"""

from tubepulse.normalization.extractor import FieldExtractor, SemiStructured
from tubepulse.normalization.normalizer import (
    extract_data_array,
    flatten_shorts_listing,
    normalize_channel,
    normalize_video,
    normalize_videos,
    unwrap_channel_payload,
    video_id_from_url,
)
from tubepulse.normalization.parsers import (
    detect_kind,
    extract_hashtags,
    extract_thumbnail,
    normalize_duration,
    normalize_published_at,
    parse_number,
    parse_relative_time,
    parse_timestamp,
    strip_hashtags,
)
from tubepulse.normalization.schema import ChannelInfo, Video, VideoKind

__all__ = [
    # Schema
    "ChannelInfo",
    "Video",
    "VideoKind",
    # Extraction
    "FieldExtractor",
    "SemiStructured",
    # Normalizer
    "extract_data_array",
    "flatten_shorts_listing",
    "normalize_channel",
    "normalize_video",
    "normalize_videos",
    "unwrap_channel_payload",
    "video_id_from_url",
    # Parsers
    "detect_kind",
    "extract_hashtags",
    "extract_thumbnail",
    "normalize_duration",
    "normalize_published_at",
    "parse_number",
    "parse_relative_time",
    "parse_timestamp",
    "strip_hashtags",
]
