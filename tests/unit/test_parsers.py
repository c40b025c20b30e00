"""Unit tests for field value parsers."""

from datetime import datetime, timezone

import pytest

from tubepulse.normalization.parsers import (
    detect_kind,
    extract_hashtags,
    extract_thumbnail,
    normalize_duration,
    normalize_published_at,
    parse_number,
    parse_relative_time,
    parse_timestamp,
    seconds_to_iso,
    strip_hashtags,
)
from tubepulse.normalization.schema import VideoKind

NOW = datetime(2025, 3, 31, 12, 0, 0, tzinfo=timezone.utc)


class TestParseNumber:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1.5M", 1_500_000),
            ("150K", 150_000),
            ("2만", 20_000),
            ("3억", 300_000_000),
            ("", 0),
            (42, 42),
            ("1,234 views", 1234),
            ("2.3만", 23_000),
            ("1.2천", 1200),
            ("조회수 15만회", 150_000),
            ("1.5B", 1_500_000_000),
            ("3.7k subscribers", 3700),
            ("12.9", 12),
            (7.9, 7),
        ],
    )
    def test_parses_counts(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, "no views", "   ", [], {}])
    def test_unparseable_is_zero(self, value):
        assert parse_number(value) == 0

    def test_negative_clamped(self):
        assert parse_number(-5) == 0
        assert parse_number(float("inf")) == 0

    def test_suffix_inside_word_is_not_a_multiplier(self):
        """The M of "MORE" after a number is not a million."""
        assert parse_number("5 more") == 5


class TestNormalizeDuration:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1:23:45", "PT1H23M45S"),
            ("PT5M0S", "PT5M0S"),
            ("garbage", ""),
            ("4:05", "PT4M5S"),
            ("59", "PT59S"),
            ("0:00", "PT0S"),
            ("SHORTS", "PT0S"),
            ("shorts", "PT0S"),
            ("pt1h", "pt1h"),
            (125, "PT2M5S"),
            (3600, "PT1H"),
            (None, ""),
            ("", ""),
            ("1:2:3:4", ""),
        ],
    )
    def test_normalizes(self, value, expected):
        assert normalize_duration(value) == expected

    def test_seconds_to_iso_omits_zero_components(self):
        assert seconds_to_iso(3605) == "PT1H5S"
        assert seconds_to_iso(0) == "PT0S"


class TestPublishedAt:
    def test_absolute_wins(self):
        result = normalize_published_at("3 days ago", "2025-01-15T09:30:00Z", now=NOW)

        assert result == "2025-01-15T09:30:00Z"

    def test_absolute_with_offset_converted_to_utc(self):
        result = normalize_published_at("", "2025-01-15T18:30:00+09:00", now=NOW)

        assert result == "2025-01-15T09:30:00Z"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("3 days ago", "2025-03-28T12:00:00Z"),
            ("1 hour ago", "2025-03-31T11:00:00Z"),
            ("Streamed 2 weeks ago", "2025-03-17T12:00:00Z"),
            ("5분 전", "2025-03-31T11:55:00Z"),
            ("2일 전", "2025-03-29T12:00:00Z"),
            ("1개월 전", "2025-02-28T12:00:00Z"),
            ("1 year ago", "2024-03-31T12:00:00Z"),
        ],
    )
    def test_relative(self, text, expected):
        assert normalize_published_at(text, None, now=NOW) == expected

    def test_unparseable_is_empty(self):
        assert normalize_published_at("yesterday-ish", "not a date", now=NOW) == ""
        assert normalize_published_at(None, None, now=NOW) == ""

    def test_month_subtraction_clamps_day(self):
        """31 March minus one month lands on the last day of February."""
        assert parse_relative_time("1 month ago", NOW) == datetime(
            2025, 2, 28, 12, 0, tzinfo=timezone.utc
        )

    def test_parse_timestamp_naive_is_utc(self):
        parsed = parse_timestamp("2025-01-01T00:00:00")

        assert parsed == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("") is None
        assert parse_timestamp(123) is None


class TestThumbnail:
    def test_last_array_entry_is_largest(self):
        raw = {
            "thumbnail": [
                {"url": "https://i/default.jpg"},
                {"url": "https://i/hq.jpg"},
            ]
        }

        assert extract_thumbnail(raw) == "https://i/hq.jpg"

    def test_falls_through_array_aliases(self):
        raw = {"thumbnails": [], "richThumbnail": [{"url": "https://i/rich.webp"}]}

        assert extract_thumbnail(raw) == "https://i/rich.webp"

    def test_string_fallback(self):
        assert extract_thumbnail({"image": "https://i/poster.jpg"}) == "https://i/poster.jpg"

    def test_missing(self):
        assert extract_thumbnail({}) == ""
        assert extract_thumbnail(None) == ""


class TestDetectKind:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"type": "shorts"}, VideoKind.SHORT),
            ({"type": "Short"}, VideoKind.SHORT),
            ({"type": "reel"}, VideoKind.SHORT),
            ({"type": "channel"}, VideoKind.CHANNEL),
            ({"type": "video", "isShorts": True}, VideoKind.VIDEO),
            ({"isShorts": True}, VideoKind.SHORT),
            ({"isShort": False, "lengthText": "SHORTS"}, VideoKind.VIDEO),
            ({"lengthText": "SHORTS"}, VideoKind.SHORT),
            ({"lengthText": "12:01"}, VideoKind.VIDEO),
            ({}, VideoKind.VIDEO),
        ],
    )
    def test_precedence(self, raw, expected):
        assert detect_kind(raw) is expected


class TestHashtags:
    def test_unique_case_insensitive_in_order(self):
        title = "Trip #Camping #캠핑 #camping #vlog"

        assert extract_hashtags(title) == ["#Camping", "#캠핑", "#vlog"]

    def test_capped_at_ten(self):
        text = " ".join(f"#tag{i}" for i in range(15))

        assert len(extract_hashtags(text)) == 10

    def test_strip_hashtags(self):
        assert strip_hashtags("Best trip #camping #vlog ever") == "Best trip ever"
        assert strip_hashtags("") == ""
