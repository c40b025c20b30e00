"""Unit tests for record normalization."""

import pytest

from tubepulse.normalization import (
    ChannelInfo,
    Video,
    VideoKind,
    extract_data_array,
    flatten_shorts_listing,
    normalize_channel,
    normalize_video,
    normalize_videos,
    unwrap_channel_payload,
    video_id_from_url,
)


class TestNormalizeVideo:
    def test_long_form_video(self, raw_video):
        video = normalize_video(raw_video)

        assert video.id == "dQw4w9WgXcQ"
        assert video.kind is VideoKind.VIDEO
        assert video.channel_id == "UC1234567890abcdefghij"
        assert video.channel_title == "Outdoor Kim"
        assert video.view_count == 1_523_400
        assert video.duration == "PT18M42S"
        # absolute date wins over "3 days ago"
        assert video.published_at == "2025-01-12T08:00:00Z"
        assert video.thumbnail_url.endswith("hqdefault.jpg")
        assert video.keywords == {"camping", "winter", "#캠핑", "#vlog"}
        assert video.video_count is None

    def test_short(self, raw_short):
        video = normalize_video(raw_short)

        assert video.kind is VideoKind.SHORT
        assert video.view_count == 23_000
        assert video.duration == "PT0S"
        assert video.published_at == ""

    def test_channel_hit(self, raw_channel_hit):
        video = normalize_video(raw_channel_hit)

        assert video.kind is VideoKind.CHANNEL
        assert video.id == "UCchannel000000000000000"
        assert video.channel_id == video.id
        assert video.channel_title == "Camping Channel"
        assert video.subscriber_count == 1_200_000
        assert video.video_count == 834

    def test_id_from_watch_url(self):
        """A record with no id alias still resolves the id from its URL."""
        raw = {
            "title": "Only a link",
            "url": "https://www.youtube.com/watch?v=AbCdEfGhIjK&t=42s",
        }

        assert normalize_video(raw).id == "AbCdEfGhIjK"

    def test_numeric_id_alias_ignored_for_string_alias(self):
        raw = {"id": 12345, "vid": "realVideoId"}

        assert normalize_video(raw).id == "realVideoId"

    def test_relative_date_used_when_no_absolute(self):
        raw = {"videoId": "x" * 11, "publishedTimeText": "2일 전"}

        assert normalize_video(raw).published_at.endswith("Z")

    def test_length_seconds_alias(self):
        raw = {"videoId": "x" * 11, "lengthSeconds": 754}

        assert normalize_video(raw).duration == "PT12M34S"

    @pytest.mark.parametrize("raw", [{}, None, [], "string", 0])
    def test_empty_record_degrades(self, raw):
        """Missing everything yields empty strings and zero counts."""
        video = normalize_video(raw)

        assert isinstance(video, Video)
        assert video.id == ""
        assert video.title == ""
        assert video.view_count == 0
        assert video.like_count == 0
        assert video.comment_count == 0
        assert video.subscriber_count == 0
        assert video.duration == ""
        assert video.published_at == ""
        assert video.keywords == set()

    def test_malformed_fields_degrade(self):
        raw = {
            "videoId": "x" * 11,
            "viewCount": {"nested": True},
            "lengthText": 12.5,
            "likeCount": "lots",
            "thumbnail": "not-a-list",
            "keywords": "not-a-list",
        }

        video = normalize_video(raw)

        assert video.view_count == 0
        assert video.like_count == 0
        assert video.duration == "PT12S"
        assert video.thumbnail_url == "not-a-list"
        assert video.keywords == set()


class TestVideoIdFromUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://www.youtube.com/watch?v=AbCdEfGhIjK", "AbCdEfGhIjK"),
            ("https://youtube.com/watch?feature=share&v=AbCdEfGhIjK", "AbCdEfGhIjK"),
            ("https://youtu.be/AbCdEfGhIjK?si=xyz", "AbCdEfGhIjK"),
            ("https://www.youtube.com/shorts/AbCdEfGhIjK", "AbCdEfGhIjK"),
            ("https://www.youtube.com/watch?v=tooShort", ""),
            ("https://www.youtube.com/watch?v=AbCdEfGhIjKL", ""),
            ("", ""),
        ],
    )
    def test_extracts_eleven_character_id(self, url, expected):
        assert video_id_from_url(url) == expected


class TestNormalizeVideos:
    def test_page_is_flattened_and_filtered(self, search_response):
        videos = normalize_videos(extract_data_array(search_response))

        assert [v.id for v in videos] == ["dQw4w9WgXcQ", "abcDEF12345", "nestedShort"]

    def test_kind_filter(self, search_response):
        shorts = normalize_videos(extract_data_array(search_response), kind=VideoKind.SHORT)

        assert [v.id for v in shorts] == ["abcDEF12345", "nestedShort"]

    def test_never_raises_on_junk(self):
        assert normalize_videos([None, 3, "x", {}, []]) == []


class TestEnvelopeHelpers:
    @pytest.mark.parametrize("key", ["data", "contents", "videos", "results"])
    def test_extract_data_array_keys(self, key):
        assert extract_data_array({key: [1, 2]}) == [1, 2]

    def test_extract_data_array_bare_list_and_junk(self):
        assert extract_data_array([1]) == [1]
        assert extract_data_array({"data": "nope"}) == []
        assert extract_data_array(None) == []

    def test_flatten_shorts_listing(self):
        items = [
            {"type": "video", "videoId": "a"},
            {"type": "shorts_listing", "data": [{"videoId": "b"}, {"videoId": "c"}]},
        ]

        assert [i["videoId"] for i in flatten_shorts_listing(items)] == ["a", "b", "c"]


class TestNormalizeChannel:
    def test_meta_payload(self, raw_channel_about):
        info = normalize_channel(raw_channel_about)

        assert info == ChannelInfo(
            channel_id="UCchannel000000000000000",
            title="Camping Channel",
            description="Gear reviews and trips",
            subscriber_count=1_200_000,
            video_count=834,
            thumbnail_url="https://yt3.ggpht.com/a=s176",
            banner_url="https://yt3.ggpht.com/b=w2560",
            country="KR",
            verified=True,
            handle="@campingchannel",
        )

    def test_data_list_payload(self):
        raw = {"data": [{"channelId": "UCx", "title": "From data"}]}

        assert normalize_channel(raw).title == "From data"

    def test_unwrap_falls_back_to_record(self):
        raw = {"channelId": "UCx", "title": "Flat"}

        assert unwrap_channel_payload(raw) == raw

    def test_empty_payload(self):
        assert normalize_channel({}) == ChannelInfo()
