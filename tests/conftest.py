"""
Pytest Configuration and Shared Fixtures.

This module provides raw upstream records in the shapes the video API
actually returns, for normalizer and client tests:

- raw_video: Long-form search hit
- raw_short: Shorts search hit
- raw_channel_hit: Channel search hit
- raw_channel_about: channel/about response
- search_response: One page of search results with a continuation token
"""

import pytest


@pytest.fixture
def raw_video() -> dict:
    """Return a long-form video as returned by /search."""
    return {
        "type": "video",
        "videoId": "dQw4w9WgXcQ",
        "title": "겨울 캠핑 브이로그 #캠핑 #vlog",
        "channelTitle": "Outdoor Kim",
        "channelId": "UC1234567890abcdefghij",
        "description": "Three days in the snow",
        "viewCount": "1523400",
        "publishedTimeText": "3 days ago",
        "publishDate": "2025-01-12T08:00:00Z",
        "lengthText": "18:42",
        "thumbnail": [
            {"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/default.jpg", "width": 120},
            {"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg", "width": 480},
        ],
        "keywords": ["camping", "winter"],
    }


@pytest.fixture
def raw_short() -> dict:
    """Return a short as returned by /search?type=shorts."""
    return {
        "type": "shorts",
        "videoId": "abcDEF12345",
        "title": "Tent setup in 30s",
        "viewCountText": "2.3만 views",
        "lengthText": "SHORTS",
        "thumbnail": [{"url": "https://i.ytimg.com/vi/abcDEF12345/frame0.jpg"}],
    }


@pytest.fixture
def raw_channel_hit() -> dict:
    """Return a channel as returned by /search?type=channel."""
    return {
        "type": "channel",
        "channelId": "UCchannel000000000000000",
        "title": "Camping Channel",
        "subscriberCount": "1.2M subscribers",
        "videoCount": "834",
        "thumbnail": [{"url": "https://yt3.ggpht.com/avatar=s88"}],
    }


@pytest.fixture
def raw_channel_about() -> dict:
    """Return a channel/about response."""
    return {
        "meta": {
            "channelId": "UCchannel000000000000000",
            "title": "Camping Channel",
            "description": "Gear reviews and trips",
            "subscriberCountText": "1.2M",
            "videosCountText": "834 videos",
            "channelHandle": "@campingchannel",
            "isVerified": True,
            "country": "KR",
            "avatar": [
                {"url": "https://yt3.ggpht.com/a=s48"},
                {"url": "https://yt3.ggpht.com/a=s176"},
            ],
            "image": {
                "banner": [
                    {"url": "https://yt3.ggpht.com/b=w1060"},
                    {"url": "https://yt3.ggpht.com/b=w2560"},
                ]
            },
        }
    }


@pytest.fixture
def search_response(raw_video, raw_short) -> dict:
    """Return one /search page that mixes kinds and has a continuation token."""
    return {
        "continuation": "NEXT_PAGE_TOKEN",
        "data": [
            raw_video,
            raw_short,
            {"type": "video", "title": "id-less record is dropped"},
            {
                "type": "shorts_listing",
                "data": [
                    {"type": "shorts", "videoId": "nestedShort", "title": "nested"},
                ],
            },
        ],
    }
