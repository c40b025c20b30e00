"""Canonical schema for normalized upstream records.

Provides the VideoKind enum and the Video / ChannelInfo Pydantic models that
every upstream response is mapped onto.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class VideoKind(str, Enum):
    """Kinds of search results."""

    VIDEO = "video"
    SHORT = "short"
    CHANNEL = "channel"


class Video(BaseModel):
    """Canonical video (or channel search hit).

    Counts are never negative. ``published_at`` and ``duration`` are ``""``
    when the upstream gave nothing parseable; empty means unknown, not zero.
    """

    # Identification
    id: str = ""
    kind: VideoKind = VideoKind.VIDEO

    # Core content
    title: str = ""
    description: str = ""
    thumbnail_url: str = ""
    keywords: set[str] = Field(default_factory=set)

    # Channel
    channel_id: str = ""
    channel_title: str = ""
    subscriber_count: int = Field(default=0, ge=0)

    # Engagement
    view_count: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    comment_count: int = Field(default=0, ge=0)

    # Timing
    published_at: str = Field(default="", description="UTC ISO-8601 timestamp")
    duration: str = Field(default="", description="ISO-8601 duration")

    # Channel kind only
    video_count: Optional[int] = Field(default=None, ge=0)

    # Derived
    vph: Optional[int] = Field(default=None, ge=0, description="Decay-weighted views per hour")


class ChannelInfo(BaseModel):
    """Canonical channel details."""

    channel_id: str = ""
    title: str = ""
    description: str = ""
    subscriber_count: int = Field(default=0, ge=0)
    video_count: int = Field(default=0, ge=0)
    thumbnail_url: str = ""
    banner_url: str = ""
    country: Optional[str] = None
    verified: bool = False
    handle: str = ""
